import json
import logging
import pathlib
from datetime import datetime
from typing import Any

from gestao_acoes.core.config import settings

logger = logging.getLogger("gestao_acoes.cache")


class LocalCacheError(Exception):
    pass


class LocalCache:
    """Copia local (JSON) de colecoes do diretorio.

    O banco e a unica fonte de verdade: a copia so e escrita depois de uma
    leitura bem sucedida e e apagada a cada escrita no diretorio.
    """

    def __init__(self, base_dir: str | None = None) -> None:
        self.base_dir = pathlib.Path(base_dir or settings.LOCAL_CACHE_DIR).resolve()

    def _path(self, key: str) -> pathlib.Path:
        return self.base_dir / f"{key}.json"

    def store(self, key: str, items: list[dict[str, Any]]) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        payload = {"saved_at": datetime.utcnow().isoformat(), "items": items}
        try:
            self._path(key).write_text(json.dumps(payload, default=str), encoding="utf-8")
        except OSError as exc:
            logger.warning("Falha ao gravar cache local %s: %s", key, exc)

    def load(self, key: str) -> list[dict[str, Any]] | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise LocalCacheError(f"Cache local invalido para {key}") from exc
        return payload.get("items") or []

    def invalidate(self, *keys: str) -> None:
        for key in keys:
            path = self._path(key)
            if path.exists():
                path.unlink()
                logger.debug("Cache local invalidado: %s", key)


_default_cache: LocalCache | None = None


def get_local_cache() -> LocalCache:
    global _default_cache
    if _default_cache is None:
        _default_cache = LocalCache()
    return _default_cache
