from __future__ import annotations
from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel
from . import __version__
from .fs_layout import build_layout
from .instance_lock import is_locked, read_holder
from .log_reader import list_logs, read_tail, read_from_cursor
from .settings import Settings

class ActionResult(BaseModel):
    ok: bool
    detail: str | None = None
    data: dict | None = None

def create_app(settings: Settings) -> FastAPI:
    """Read-only view on one install: never starts or stops the server."""
    app = FastAPI(title="ASA Launcher API", version=__version__)
    layout = build_layout(settings.asa_root)
    logs_dir = layout.logs_dir

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/status", response_model=ActionResult)
    def status():
        running = is_locked(layout.lock_file)
        return ActionResult(ok=True, data={
            "root": str(layout.root),
            "server_exe": str(layout.server_exe),
            "installed": layout.server_exe.is_file(),
            "launcher_running": running,
            "launcher_pid": read_holder(layout.lock_file) if running else None,
        })

    @app.get("/logs")
    def logs():
        return {"ok": True, "logs": list_logs(logs_dir)}

    @app.get("/logs/{log_id}")
    def get_log(
        log_id: str,
        tail: int = Query(default=200, ge=0, le=5000),
        cursor: str | None = None,
        max_lines: int = Query(default=200, ge=1, le=5000),
    ):
        if "/" in log_id or "\\" in log_id or log_id.startswith("."):
            raise HTTPException(status_code=400, detail="invalid_log_id")
        path = (logs_dir / f"{log_id}.log")
        if not path.exists():
            raise HTTPException(status_code=404, detail="log_not_found")

        if cursor:
            chunk = read_from_cursor(path, cursor=cursor, max_lines=max_lines)
        else:
            chunk = read_tail(path, tail_lines=tail)

        return {
            "ok": True,
            "id": log_id,
            "cursor": chunk.cursor,
            "entries": [{"n": i + 1, "line": line} for i, line in enumerate(chunk.entries)],
            "truncated": chunk.truncated,
        }
    return app
