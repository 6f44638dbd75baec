"""Main FastAPI application entry point."""
from fastapi import FastAPI

from qa_workflow.api.routes import router
from qa_workflow.database import Base, engine
from qa_workflow.logging_config import configure_logging
# Import models to register them with SQLAlchemy Base
from qa_workflow.models.audit import Changeset
from qa_workflow.models.content import Article, Attachment, TextBlock
from qa_workflow.models.domain import Group, Node, NodeHasGroup, QaState

configure_logging()

# Create database tables
Base.metadata.create_all(bind=engine)

# Create FastAPI app
app = FastAPI(
    title="QA Workflow",
    description="Quality-assurance workflow for content items: validation rules, status changes and changesets.",
    version="0.1.0"
)

# Include API routes
app.include_router(router, prefix="/api", tags=["QA"])


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "QA Workflow"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
