from fastapi import APIRouter
from .v1 import llm, workflows

api_router = APIRouter(prefix="/api", tags=["nodeflow"])

api_router.include_router(workflows.router, prefix="/v1", tags=["workflows"])
api_router.include_router(llm.router, prefix="/v1", tags=["llm"])

@api_router.get("/")
def read_root():
    return {"message": "nodeflow workflow engine"}
