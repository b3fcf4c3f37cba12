"""
Estrategias de persistencia para el contador de visitantes.

- FileVisitorStorage: un único JSON que se reescribe completo en cada guardado
  (servidor de larga duración).
- MemoryVisitorStorage: sin persistencia; los datos se pierden al reiniciar
  (hosting serverless con disco efímero).

Ninguna estrategia lanza excepciones hacia el tracker: un load fallido
devuelve None (se arranca vacío) y un save fallido se loguea y devuelve False.
"""
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from ..config import Settings

logger = logging.getLogger(__name__)


class VisitorStorage(ABC):
    name = "abstract"

    @abstractmethod
    def load(self) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def save(self, snapshot: Dict[str, Any]) -> bool: ...

    @abstractmethod
    def reset(self) -> None: ...

    @property
    def persistent(self) -> bool:
        return False

    def describe(self) -> Dict[str, Any]:
        return {"storage": self.name, "persistent": self.persistent}


class FileVisitorStorage(VisitorStorage):
    name = "file"

    def __init__(self, path: Path):
        self.path = Path(path)
        # Los guardados corren en threads del executor; uno a la vez
        self._lock = threading.Lock()

    @property
    def persistent(self) -> bool:
        return True

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            logger.info(f"📊 No existe {self.path}, se crea un almacenamiento nuevo")
            return None
        try:
            with self._lock:
                data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                logger.error(f"❌ Formato inválido en {self.path}, se ignora")
                return None
            return data
        except (OSError, ValueError) as e:
            logger.error(f"❌ Error al cargar datos de visitantes: {e}", exc_info=True)
            return None

    def save(self, snapshot: Dict[str, Any]) -> bool:
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
                tmp_path.write_text(json.dumps(snapshot, indent=2), encoding="utf-8")
                os.replace(tmp_path, self.path)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"❌ Error al guardar datos de visitantes: {e}", exc_info=True)
            return False

    def reset(self) -> None:
        try:
            with self._lock:
                if self.path.exists():
                    self.path.unlink()
        except OSError as e:
            logger.error(f"❌ No se pudo borrar {self.path}: {e}")

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info["path"] = str(self.path)
        info["exists"] = self.path.exists()
        info["size"] = 0
        info["lastModified"] = None
        if info["exists"]:
            try:
                stat = self.path.stat()
                info["size"] = stat.st_size
                info["lastModified"] = datetime.fromtimestamp(
                    stat.st_mtime, tz=timezone.utc
                ).isoformat()
            except OSError as e:
                logger.warning(f"⚠️ No se pudo leer stat de {self.path}: {e}")
        return info


class MemoryVisitorStorage(VisitorStorage):
    name = "memory"

    def load(self) -> Optional[Dict[str, Any]]:
        return None

    def save(self, snapshot: Dict[str, Any]) -> bool:
        return True

    def reset(self) -> None:
        return None

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info["path"] = None
        info["exists"] = False
        info["note"] = "In-memory storage: data resets when the process restarts"
        return info


def new_storage(settings: Settings) -> VisitorStorage:
    """Elige la estrategia de persistencia una sola vez, al construir el tracker."""
    if settings.visitor_storage == "memory":
        logger.info("🚀 Visitantes en memoria (los datos se reinician con el proceso)")
        return MemoryVisitorStorage()
    logger.info(f"💾 Visitantes persistidos en {settings.visitor_data_file}")
    return FileVisitorStorage(settings.visitor_data_file)
