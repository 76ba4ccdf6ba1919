from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any, List
import logging
import os
from dotenv import load_dotenv

from flowguard.config import RepairSettings
from flowguard.schemas.process_graph import ProcessGraph
from flowguard.schemas.violations import Violation
from flowguard.services.graph_validator import GraphValidator
from flowguard.services.repair_loop import RepairLoop, RepairRunResult
from flowguard.translators.graph_translator import GraphTranslator, GraphTranslationError
from flowguard.utils.json_extraction import ExtractionError, extract

# Load environment variables
load_dotenv()
settings = RepairSettings.from_env()

# Configure logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

# Initialize services
graph_translator = GraphTranslator()
graph_validator = GraphValidator(settings)
repair_loop = RepairLoop(settings=settings)

app = FastAPI(title="flowguard", version="1.0.0")

# Configure CORS for local editors
allowed_origins = [
    "http://localhost:5173",
    "http://localhost:3000",
    "http://localhost:8000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# ============================================================================
# REQUEST MODELS
# ============================================================================

class ExtractRequest(BaseModel):
    text: str

class GraphRequest(BaseModel):
    graph: Dict[str, Any]

class RepairRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    graph: Dict[str, Any]
    max_iterations: Optional[int] = Field(default=None, alias="maxIterations", ge=0)

class ExtractAndRepairRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    max_iterations: Optional[int] = Field(default=None, alias="maxIterations", ge=0)


# ============================================================================
# RESPONSE HELPERS
# ============================================================================

def violations_to_dicts(violations: List[Violation]) -> List[Dict[str, Any]]:
    return [v.model_dump(mode="json") for v in violations]

def run_result_to_dict(result: RepairRunResult) -> Dict[str, Any]:
    return {
        "outcome": result.outcome.value,
        "graph": graph_translator.to_payload(result.graph),
        "changelog": result.changelog,
        "residualErrors": violations_to_dicts(result.residual_errors),
        "residualWarnings": violations_to_dicts(result.residual_warnings),
        "iterations": result.iterations,
        "validationPasses": result.validation_passes,
    }

def to_graph_or_400(payload: Any) -> ProcessGraph:
    try:
        return graph_translator.to_graph(payload)
    except GraphTranslationError as e:
        logger.warning(f"Invalid graph payload: {e}")
        raise HTTPException(status_code=400, detail=f"Invalid graph format: {str(e)}")


# ============================================================================
# ENDPOINTS
# ============================================================================

@app.get("/health")
async def health_check():
    return {"status": "healthy"}

@app.post("/extract")
async def extract_structured_value(request: ExtractRequest):
    """Recover a JSON object or array from generated text"""
    try:
        result = extract(request.text)
    except ExtractionError as e:
        logger.warning(f"Extraction failed for input of {e.input_length} chars")
        raise HTTPException(status_code=422, detail=e.to_dict())

    return {
        "value": result.value,
        "recoveredByTruncationRepair": result.recovered_by_truncation_repair,
        "repairsApplied": result.repairs_applied,
    }

@app.post("/validate")
async def validate_graph(request: GraphRequest):
    """Validate a process graph without changing it"""
    graph = to_graph_or_400(request.graph)
    report = graph_validator.validate(graph)

    logger.info(f"Validation: valid={report.valid}, {len(report.errors)} error(s), {len(report.warnings)} warning(s)")
    return {
        "valid": report.valid,
        "errors": violations_to_dicts(report.errors),
        "warnings": violations_to_dicts(report.warnings),
    }

@app.post("/repair")
async def repair_graph(request: RepairRequest):
    """Validate and auto-repair a process graph"""
    graph = to_graph_or_400(request.graph)
    result = repair_loop.run(graph, max_iterations=request.max_iterations)

    logger.info(f"Repair {result.outcome.value}: {len(result.changelog)} fix(es) in {result.iterations} iteration(s)")
    return run_result_to_dict(result)

@app.post("/extract-and-repair")
async def extract_and_repair(request: ExtractAndRepairRequest):
    """Extract a graph from generated text, then validate and auto-repair it"""
    try:
        extraction = extract(request.text)
    except ExtractionError as e:
        logger.warning(f"Extraction failed for input of {e.input_length} chars")
        raise HTTPException(status_code=422, detail=e.to_dict())

    graph = to_graph_or_400(extraction.value)
    result = repair_loop.run(graph, max_iterations=request.max_iterations)

    response = run_result_to_dict(result)
    response["recoveredByTruncationRepair"] = extraction.recovered_by_truncation_repair
    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
