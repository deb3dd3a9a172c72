"""
Process entry point for the Curbside FastAPI application.
Platforms that look for a module-level `application` object import it from here.
"""

from curbside.config import settings
from curbside.main import app

application = app

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(application, host=settings.app_host, port=settings.app_port)
