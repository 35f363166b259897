import logging
import time

import requests
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class Download(BaseModel):
    """
    signing keys and vendor setup scripts fetched over https
    """
    url: str
    timeout: float = 30.0

    def __str__(self) -> str:
        return f"<{self.__class__.__name__}:{self.url}>"

    def fetch(self) -> bytes:
        from serverforge.forge.errors import DownloadError

        start_time = time.time()
        logger.info(f"{self} downloading")
        try:
            response = requests.get(self.url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise DownloadError(f"download of {self.url} failed: {e}")

        download_time = time.time() - start_time
        logger.info(f"{self} downloaded {len(response.content)} bytes in {download_time:.2f} seconds")
        return response.content
