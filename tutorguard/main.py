"""Main application entry point for the FastAPI application.

This module serves as the central entry point for the application.
It initializes the application and creates the FastAPI instance using
the application factory pattern::

    uvicorn tutorguard.main:app
"""

from tutorguard.core.application import create_application
from tutorguard.core.config import get_settings
from tutorguard.core.initialization import initialize_application

settings = get_settings()

# Initialize the application
initialize_application(settings)

# Create the FastAPI application
app = create_application(settings)
