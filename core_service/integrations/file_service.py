"""
File service gateway.

The file service stores uploaded attachment binaries and their thumbnails.
This service only ever asks it to lock a file, which makes the file
immutable once the workflow step that produced it is completed.

Endpoint:
    POST {FILE_SERVICE_URL}/v1/files/<ref_id>/lock
"""

from __future__ import annotations

import logging

from core_service.core.exceptions import FileLockError
from core_service.integrations.http_gateway import GatewayError, HttpGateway

logger = logging.getLogger(__name__)


class FileServiceGateway(HttpGateway):
    service_name = "file-service"
    base_url_config_key = "FILE_SERVICE_URL"

    def lock_file(self, ref_id: str, auth_headers: dict | None = None) -> None:
        """Lock one file, forwarding the caller's credentials.

        Raises:
            FileLockError: on any non-2xx answer or transport failure.
        """
        try:
            resp = self.request("POST", f"/v1/files/{ref_id}/lock", headers=auth_headers)
        except GatewayError as exc:
            raise FileLockError(ref_id, str(exc)) from exc

        if not resp.ok:
            raise FileLockError(ref_id, f"HTTP {resp.status_code}")
        logger.info("File locked ref_id=%s", ref_id)


file_service_gateway = FileServiceGateway()
