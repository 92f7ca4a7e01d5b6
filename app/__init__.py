"""
Doctor Scheduling Service

FastAPI backend for doctor working hours, leave periods, free appointment
slots and the appointment lifecycle, with an arq worker sweeping no-shows.
"""

__version__ = "1.0.0"
