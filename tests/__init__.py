"""
Test suite for the Doctor Scheduling Service.

Contains unit tests for the scheduling services and API tests for the routers.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
