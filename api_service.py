"""
HTTP API for the Email Discovery Service
Exposes one endpoint per discovery operation; every call returns addresses plus a narrative
"""
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List

import uvicorn
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel

from config import get_settings
from models import (
    CompanyLookupRequest,
    CriteriaSearchRequest,
    DomainLookupRequest,
    NameGuessRequest,
    PipelineResult,
    TextExtractionRequest,
)
from pipeline import DiscoveryPipeline, close_pipeline, get_pipeline


class PipelineResponse(BaseModel):
    """Response model for every discovery operation"""
    addresses: List[str]
    narrative: str


def _respond(result: PipelineResult) -> PipelineResponse:
    return PipelineResponse(addresses=result.addresses, narrative=result.narrative)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan manager"""
    logger.info("Starting Email Discovery API Service")
    yield
    logger.info("Shutting down Email Discovery API Service")
    await close_pipeline()


# Create FastAPI app
app = FastAPI(
    title="Email Discovery API",
    description="Discover business email addresses from criteria, text, names, domains or a company",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/ping")
async def ping():
    """Simple ping endpoint to check service availability"""
    return {
        "ping": "pong",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": get_settings().service_name
    }


@app.get("/health")
async def health_check():
    """Health check reporting which collaborators have credentials"""
    settings = get_settings()
    return {
        "status": "healthy",
        "service": settings.service_name,
        "configured": {
            "language_model": bool(settings.perplexity_api_key),
            "contact_finder": bool(
                settings.hunter_api_key if settings.contact_finder_provider == "hunter" else settings.apollo_api_key
            ),
            "validator": bool(
                settings.zerobounce_api_key if settings.verification_provider == "zerobounce"
                else settings.neverbounce_api_key
            ),
            "scraper": bool(settings.scraper_url),
        },
    }


@app.post("/search/criteria", response_model=PipelineResponse)
async def find_by_criteria(request: CriteriaSearchRequest, pipeline: DiscoveryPipeline = Depends(get_pipeline)):
    """Find companies matching the criteria and look up their contacts"""
    return _respond(await pipeline.find_by_criteria(request))


@app.post("/extract/text", response_model=PipelineResponse)
async def extract_from_text(request: TextExtractionRequest, pipeline: DiscoveryPipeline = Depends(get_pipeline)):
    """Extract and verify addresses found in a block of text"""
    return _respond(await pipeline.extract_from_text(request))


@app.post("/generate/names", response_model=PipelineResponse)
async def generate_from_names(request: NameGuessRequest, pipeline: DiscoveryPipeline = Depends(get_pipeline)):
    """Guess addresses for the people named in a block of text"""
    return _respond(await pipeline.generate_from_names(request))


@app.post("/generate/domains", response_model=PipelineResponse)
async def generate_from_domains(request: DomainLookupRequest, pipeline: DiscoveryPipeline = Depends(get_pipeline)):
    """Collect addresses for the websites or domains in a block of text"""
    return _respond(await pipeline.generate_from_domains(request))


@app.post("/extract/company", response_model=PipelineResponse)
async def extract_from_company(request: CompanyLookupRequest, pipeline: DiscoveryPipeline = Depends(get_pipeline)):
    """Find addresses associated with a company name or website"""
    return _respond(await pipeline.extract_from_company(request))


if __name__ == "__main__":
    # Setup logging
    from main import setup_production_logging
    setup_production_logging()

    settings = get_settings()
    port = int(os.getenv("PORT", settings.api_port))
    host = os.getenv("HOST", settings.api_host)

    logger.info(f"Starting Email Discovery API Service on {host}:{port}")
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
        access_log=False
    )
