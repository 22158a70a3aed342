from __future__ import annotations
import json
import os
import time
from typing import Any, Dict, List, Optional


def ts() -> str:
    return time.strftime("%Y%m%d_%H%M%SZ", time.gmtime())


def save_trace(trace_dir: str, meta: Dict[str, Any], steps: List[Dict[str, Any]],
               errors: Optional[List[str]] = None) -> str:
    data = {
        "meta": meta,
        "steps": steps,
        "errors": errors or [],
    }
    os.makedirs(trace_dir, exist_ok=True)
    ident = str(meta.get("ident") or "config").replace(os.sep, "_")
    fname = f"resolve_{ident}_{ts()}.json"
    fpath = os.path.join(trace_dir, fname)
    with open(fpath, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=str)
    return fpath
