#!/usr/bin/env python
"""
Run the scheduling API locally without Docker.

Run: python run_api.py

Then open browser: http://localhost:8000/docs
Set DATABASE_URL=sqlite:// for a throwaway in-memory database.
"""
import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "tandem.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
