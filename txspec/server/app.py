#!/usr/bin/env python3
"""
txspec FastAPI Server
Provides a REST API for statement checking and trace verification
"""
import logging
import os
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ValidationError

import txspec
from txspec.core.config import EngineConfig
from txspec.core.errors import SpecificationError, TxSpecError
from txspec.ingest import DeploymentRecord, SchemaRecord, TraceRecord, load_trace
from txspec.proofs import VerdictCache
from txspec.translators.statements import parse_statement
from txspec.verify import StatementSource, Verifier

logger = logging.getLogger(__name__)


# ============================================================================
# Request/Response Models
# ============================================================================

class StatementRequest(BaseModel):
    source: str
    contract: str
    label: Optional[str] = None
    oneway: bool = False


class CheckStatementsRequest(BaseModel):
    schemas: List[SchemaRecord]
    deployments: List[DeploymentRecord] = Field(default_factory=list)
    statements: List[StatementRequest]


class StatementCheck(BaseModel):
    source: str
    valid: bool
    statement: Optional[str] = None
    error: Optional[str] = None


class CheckStatementsResponse(BaseModel):
    results: List[StatementCheck]


class VerifyRequest(BaseModel):
    trace: TraceRecord
    statements: List[StatementRequest]
    report_all: Optional[bool] = None
    check_causality: bool = True


class VerifyResponse(BaseModel):
    success: bool
    summary: Optional[dict] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    version: str
    cache_enabled: bool


class CacheStatsResponse(BaseModel):
    total_entries: int
    cache_hits: int
    cache_misses: int


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="txspec API",
    description="Checks transaction statements against smart-contract execution traces",
    version=txspec.__version__
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global verifier instance
verifier: Optional[Verifier] = None


def get_verifier() -> Verifier:
    """Get or create the verifier, configured from the environment"""
    global verifier
    if verifier is None:
        verifier = Verifier(EngineConfig.from_env())
    return verifier


def get_cache() -> Optional[VerdictCache]:
    return get_verifier().cache


# ============================================================================
# Endpoints
# ============================================================================

@app.get("/", response_model=HealthResponse)
async def health():
    """Health check endpoint"""
    return {
        "status": "ok",
        "version": txspec.__version__,
        "cache_enabled": get_cache() is not None
    }


@app.post("/api/check-statements", response_model=CheckStatementsResponse)
def check_statements(request: CheckStatementsRequest):
    """
    Parse and type-check statements against schemas, without any trace.

    Example:
        POST /api/check-statements
        {
            "schemas": [{"name": "Lottery", "fields": {"started": "bool"},
                         "functions": {"play": [["guess", "uint256"]]}}],
            "statements": [{"source": "reverted(play, !started)", "contract": "Lottery"}]
        }
    """
    by_name = {}
    for record in request.schemas:
        try:
            by_name[record.name] = record.to_schema()
        except (TxSpecError, ValueError) as e:
            raise HTTPException(status_code=422, detail=f"Schema {record.name}: {e}")

    results = []
    for item in request.statements:
        schema = by_name.get(item.contract)
        if schema is None:
            results.append({"source": item.source, "valid": False,
                            "error": f"Unknown contract '{item.contract}'"})
            continue
        try:
            statement = parse_statement(item.source, schema, item.label, item.oneway)
        except SpecificationError as e:
            results.append({"source": item.source, "valid": False, "error": str(e)})
            continue
        results.append({"source": item.source, "valid": True, "statement": statement.identity})
    return {"results": results}


# Verification is CPU-bound; plain `def` runs it in the threadpool
@app.post("/api/verify", response_model=VerifyResponse)
def verify(request: VerifyRequest):
    """
    Verify statements against a trace.

    Example:
        POST /api/verify
        {
            "trace": {"schemas": [...], "deployments": [...], "transactions": [...]},
            "statements": [{"source": "finished(play, started |=> this.value > 0)",
                            "contract": "Lottery"}]
        }
    """
    try:
        repository = load_trace(request.trace, check_causality=request.check_causality)
    except (TxSpecError, ValidationError, ValueError) as e:
        logger.warning("Rejected trace: %s", e)
        return {"success": False, "error": str(e)}

    sources = [StatementSource(s.source, s.contract, s.label, s.oneway) for s in request.statements]
    summary = get_verifier().verify_all(sources, repository, request.report_all)
    return {"success": True, "summary": summary.to_dict()}


@app.get("/api/cache/stats", response_model=CacheStatsResponse)
async def cache_stats():
    """Verdict cache statistics"""
    cache = get_cache()
    if cache is None:
        raise HTTPException(status_code=404, detail="Verdict cache is disabled (set TXSPEC_CACHE_DIR)")
    return cache.get_stats()


@app.delete("/api/cache")
async def clear_cache():
    """Remove every cached verdict"""
    cache = get_cache()
    if cache is None:
        raise HTTPException(status_code=404, detail="Verdict cache is disabled (set TXSPEC_CACHE_DIR)")
    cache.clear_all()
    return {"success": True}


# ============================================================================
# Run Server
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    from dotenv import load_dotenv

    # TXSPEC_* settings may live in a local .env file
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("TXSPEC_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    port = int(os.getenv("TXSPEC_PORT", "8000"))
    logger.info("Starting txspec API server on http://localhost:%d (docs at /docs)", port)
    uvicorn.run(app, host="0.0.0.0", port=port)
