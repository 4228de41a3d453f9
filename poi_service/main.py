#!/usr/bin/env python3
from fastapi import FastAPI, UploadFile, File, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
import logging, tempfile, os
from pathlib import Path
from typing import Dict, List, Tuple

from geodex.boq import stream_cells
from geodex.errors import ConfigError, ParseError
from genpoifile.converter import BOQConverter
from genpoifile.main import default_map_name

app = FastAPI(title="BOQ-Lite POI service")
logger = logging.getLogger(__name__)

request_counter = Counter("boq_requests_total", "Total BOQ uploads", ["endpoint"])
failure_counter = Counter("boq_failures_total", "BOQ runs that stored an error", ["kind"])
cells_counter = Counter("boq_cells_total", "Cells decoded from uploads")
process_duration = Histogram("boq_process_seconds", "Time spent streaming uploads")

CHUNK_SIZE = 8*1024*1024  # 8 MB
KML_MEDIA_TYPE = "application/vnd.google-earth.kml+xml"


@app.get("/health", tags=["ops"])
def health():
    return {"status": "healthy"}


@app.get("/metrics", tags=["ops"])
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


async def _spool(files: List[UploadFile]) -> Tuple[Dict[str, str], int]:
    """Copy uploads to temp files. Returns {temp path: upload name} in upload order."""
    names: Dict[str, str] = {}
    total = 0
    try:
        for upload in files:
            with tempfile.NamedTemporaryFile(suffix=".json", delete=False) as tmp:
                names[tmp.name] = upload.filename or "upload.json"
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    tmp.write(chunk)
                    total += len(chunk)
    except Exception:
        _cleanup(names)
        raise
    return names, total


def _cleanup(names: Dict[str, str]) -> None:
    for path in names:
        Path(path).unlink(missing_ok=True)


def _convert(names: Dict[str, str]) -> BOQConverter:
    bc = BOQConverter(default_map_name())
    with process_duration.time():
        try:
            stream = stream_cells(list(names))
        except ConfigError as e:
            raise HTTPException(status_code=400, detail=str(e))
        with stream:
            for cell in stream:
                cells_counter.inc()
                bc.process_cell(cell)

    err = stream.error
    if err is None:
        return bc
    detail = str(err)
    path = getattr(err, "path", None)
    if path in names:
        detail = detail.replace(path, names[path])
    if isinstance(err, ParseError):
        failure_counter.labels(kind="parse").inc()
        raise HTTPException(status_code=422, detail=detail)
    failure_counter.labels(kind="io").inc()
    logger.error("boq runner failed: %s", detail)
    raise HTTPException(status_code=500, detail=detail)


@app.post("/process/files", tags=["process"])
async def process_files(files: List[UploadFile] = File(...)):
    request_counter.labels(endpoint="process").inc()
    names, total = await _spool(files)
    try:
        bc = await run_in_threadpool(_convert, names)
    finally:
        _cleanup(names)
    return JSONResponse({"files": len(names), "bytes": total, **bc.summary()})


@app.post("/convert/kml", tags=["process"])
async def convert_kml(files: List[UploadFile] = File(...)):
    request_counter.labels(endpoint="kml").inc()
    names, _ = await _spool(files)
    try:
        bc = await run_in_threadpool(_convert, names)
    finally:
        _cleanup(names)
    return Response(bc.to_bytes(), media_type=KML_MEDIA_TYPE)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
