import uvicorn
from async_recorder.core.config import settings

if __name__ == "__main__":
    # Tunnel startup happens in the app's startup event (AppContext.startup)
    print(f"🚀 Starting Server on port {settings.API_PORT}")

    uvicorn.run("async_recorder.main:create_app", factory=True, host="0.0.0.0", port=settings.API_PORT)
