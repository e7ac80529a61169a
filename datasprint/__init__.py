"""
Backend package for the DataSprint contest service.

This package provides a FastAPI application that serves round datasets
through signed storage URLs, takes team submissions and lets admins score
teams and drive the round clock.
"""
