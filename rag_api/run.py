import uvicorn

from rag_api.config import settings

if __name__ == "__main__":
    uvicorn.run("rag_api.main:app", host=settings.HOST, port=settings.PORT)
