"""
Application entry point
"""

import os
import uvicorn
from reconciler.core.config import settings
from reconciler.main import app

if __name__ == "__main__":
    port = int(os.getenv("PORT", settings.PORT))
    uvicorn.run(
        app,
        host=settings.HOST,
        port=port,
        reload=settings.DEBUG
    )
