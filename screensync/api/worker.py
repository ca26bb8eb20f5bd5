from fastapi import APIRouter, Depends
from screensync.services.runtime import get_worker
from screensync.services.worker import ReconciliationWorker

router = APIRouter(prefix="/worker", tags=["worker"])


@router.get("")
def worker_status(worker: ReconciliationWorker = Depends(get_worker)):
    return worker.status()


@router.post("/start")
async def start_worker(worker: ReconciliationWorker = Depends(get_worker)):
    started = worker.start()
    return {"ok": True, "started": started, "running": worker.running}


@router.post("/stop")
async def stop_worker(worker: ReconciliationWorker = Depends(get_worker)):
    stopped = await worker.stop()
    return {"ok": True, "stopped": stopped, "running": worker.running}


@router.post("/run")
async def run_worker_once(worker: ReconciliationWorker = Depends(get_worker)):
    summary = await worker.run_once()
    return summary.to_dict()
