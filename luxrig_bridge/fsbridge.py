"""
Filesystem bridge.

A small local-only HTTP service that lets a browser app list directories and
open files with the OS default application. CORS is wide open; bind it to
localhost.

Endpoints:
  GET /status           - Server status
  GET /paths            - Common user paths
  GET /list?path=...    - List a directory (defaults to the desktop)
  GET /open?path=...    - Open a file or folder with the OS
"""

import logging
import os
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import get_settings
from .logging_config import setup_logging

logger = logging.getLogger(__name__)

IMAGE_EXTS = {"jpg", "jpeg", "png", "gif", "svg", "webp", "bmp", "ico"}
CODE_EXTS = {"js", "ts", "py", "html", "css", "json", "jsx", "tsx", "rs", "go"}
DOC_EXTS = {"pdf", "doc", "docx", "txt", "md", "rtf", "xls", "xlsx", "ppt", "pptx"}


def default_paths(home: Optional[Path] = None) -> dict[str, str]:
    home = home or Path.home()
    return {
        "home": str(home),
        "desktop": str(home / "Desktop"),
        "documents": str(home / "Documents"),
        "downloads": str(home / "Downloads"),
    }


def file_type(name: str, is_dir: bool) -> str:
    if is_dir:
        return "folder"
    ext = Path(name).suffix.lower().lstrip(".")
    if ext in IMAGE_EXTS:
        return "image"
    if ext in CODE_EXTS:
        return "code"
    if ext in DOC_EXTS:
        return "document"
    return "other"


def read_dir(dir_path: str) -> list[dict]:
    """
    List a directory, folders first, then names case-insensitively.

    Raises:
        OSError if the directory cannot be read
    """
    entries = []
    with os.scandir(dir_path) as it:
        for entry in it:
            is_dir = entry.is_dir()
            size = 0
            modified = None
            try:
                stat = entry.stat()
                size = stat.st_size
                modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat()
            except OSError:
                # Broken symlink or permission denied; list it anyway
                pass

            entries.append({
                "name": entry.name,
                "path": os.path.join(dir_path, entry.name),
                "isDirectory": is_dir,
                "size": size,
                "modified": modified,
                "type": file_type(entry.name, is_dir),
            })

    entries.sort(key=lambda e: (not e["isDirectory"], e["name"].lower()))
    return entries


def open_command(path: str) -> Optional[list[str]]:
    """Opener argv for this platform, or None on Windows (os.startfile)."""
    if sys.platform == "win32":
        return None
    if sys.platform == "darwin":
        return ["open", path]
    return ["xdg-open", path]


def open_path(path: str) -> None:
    """Open a path with the OS default application. Raises OSError on failure."""
    command = open_command(path)
    if command is None:
        os.startfile(path)  # type: ignore[attr-defined]
        return
    subprocess.Popen(
        command,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )


def create_fs_app(paths: Optional[dict[str, str]] = None, version: str = "1.0.0") -> FastAPI:
    """Create the filesystem bridge app."""
    paths = paths or default_paths()

    app = FastAPI(
        title="Filesystem Bridge",
        description="Local directory listing and file opening for browser apps",
        version=version,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = "Not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"error": message})

    @app.get("/status")
    async def status():
        return {"status": "ok", "version": version, "paths": paths}

    @app.get("/paths")
    async def get_paths():
        return paths

    @app.get("/list")
    async def list_dir(path: Optional[str] = None):
        dir_path = path or paths["desktop"]
        try:
            files = read_dir(dir_path)
        except OSError as e:
            logger.warning("Cannot read directory %s: %s", dir_path, e)
            return JSONResponse(
                status_code=500,
                content={"error": f"Cannot read directory: {e.strerror or e}"},
            )
        return {"path": dir_path, "files": files}

    @app.get("/open")
    async def open_file(path: Optional[str] = None):
        if not path:
            return JSONResponse(status_code=400, content={"error": "Missing path"})
        if not os.path.exists(path):
            return JSONResponse(status_code=404, content={"error": f"No such file: {path}"})

        try:
            open_path(path)
        except OSError as e:
            logger.error("Failed to open %s: %s", path, e)
            return JSONResponse(status_code=500, content={"error": str(e)})

        logger.info("Opened %s", path)
        return {"success": True}

    return app


def run():
    settings = get_settings()
    setup_logging()
    app = create_fs_app(version=settings.version)
    logger.info("Filesystem bridge on http://localhost:%d", settings.fs_bridge_port)
    uvicorn.run(app, host="127.0.0.1", port=settings.fs_bridge_port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
