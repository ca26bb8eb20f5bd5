from screensync.services.reconciler import PlaybackReconciler
from screensync.services.remote import RemotePlatform
from screensync.services.worker import ReconciliationWorker

remote = RemotePlatform()
reconciler = PlaybackReconciler(remote)
worker = ReconciliationWorker(reconciler)


def get_reconciler() -> PlaybackReconciler:
    return reconciler


def get_worker() -> ReconciliationWorker:
    return worker
