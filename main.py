"""
FastAPI backend entry point for the bet-acceptance service
"""
from lotto_risk.api import create_app
import os

app = create_app()

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
