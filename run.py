#!/usr/bin/env python3
"""
SMS Ledger API - Entry Point

This script starts the FastAPI application using uvicorn.
"""

import uvicorn

if __name__ == "__main__":
    # Run the FastAPI application
    uvicorn.run(
        "smsledger.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,  # Enable auto-reload for development
        log_level="info"
    )
