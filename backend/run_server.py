#!/usr/bin/env python3
"""
Run the HVAC qualification API server
"""
import os

import uvicorn

if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    print(f"Starting HVAC Qualification API on http://localhost:{port}")
    print(f"API documentation: http://localhost:{port}/docs")

    try:
        uvicorn.run(
            "app.main:app",
            host="0.0.0.0",
            port=port,
            reload=os.getenv("DEBUG", "false").lower() == "true",
            log_level="info"
        )
    except KeyboardInterrupt:
        print("\nServer stopped")
