import uvicorn

from backend.database import settings
from backend.main import app

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT, reload=False)
