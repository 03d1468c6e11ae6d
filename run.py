#!/usr/bin/env python3
"""
Run script for deployment
"""

import os
import uvicorn

# Import the FastAPI app
from showcase.main import app

if __name__ == "__main__":
    # Get port from environment variable
    port = int(os.environ.get("PORT", 8000))

    # Run the application
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info"
    )
