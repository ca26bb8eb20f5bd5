import logging

from screensync.services.remote import RemotePlatform
from screensync.services.remote_state import assign_payload
from screensync.services.results import RefreshResult

logger = logging.getLogger(__name__)


class PlaybackRefresher:
    def __init__(self, remote: RemotePlatform):
        self.remote = remote

    async def refresh(self, device_id: str, playlist_id: str | None = None) -> RefreshResult:
        restart = await self.remote.request(f"/screens/{device_id}/restart/", method="POST")
        if restart.ok:
            return RefreshResult(ok=True, method="restart")
        logger.info("restart of device %s failed (%s), trying re-push", device_id, restart.error)

        if not playlist_id:
            return RefreshResult(ok=False, error=restart.error)

        assign = await self.remote.request(f"/screens/{device_id}/", method="PATCH", body=assign_payload(playlist_id))
        if not assign.ok:
            return RefreshResult(ok=False, error=assign.error)
        push = await self.remote.request(f"/screens/{device_id}/push/", method="POST")
        if not push.ok:
            logger.warning("re-push to device %s failed: %s", device_id, push.error)
            return RefreshResult(ok=False, method="repush", error=push.error)
        return RefreshResult(ok=True, method="repush")
