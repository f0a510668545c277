import uvicorn
from tableview.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "tableview.main:app",
        reload=settings.is_development,  # Auto-reload on code changes
        workers=1
    )
