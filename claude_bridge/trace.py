"""Wire trace logging.

When CLAUDE_BRIDGE_TRACE_LOG names a file, every line exchanged with the
CLI process is appended to it with a timestamp and the component that
saw it. Unset or empty leaves tracing off.
"""

import os
import traceback
from datetime import datetime


TRACE_ENV_VAR = "CLAUDE_BRIDGE_TRACE_LOG"


def wire_trace(component: str, msg: str, *, include_traceback: bool = False) -> None:
    """Append one line to the wire trace file, if tracing is on.

    Never raises; a trace file that cannot be written is ignored.

    Args:
        component: Prefix naming the writer, e.g. "transport" or "bridge".
        msg: The line to record.
        include_traceback: Also record the exception being handled.
    """
    path = os.environ.get(TRACE_ENV_VAR)
    if not path:
        return

    stamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
    lines = [f"[{stamp}] [{component}] {msg}\n"]
    if include_traceback:
        tb = traceback.format_exc()
        if tb.strip() != "NoneType: None":
            lines.append(tb if tb.endswith("\n") else tb + "\n")

    try:
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.writelines(lines)
    except OSError:
        pass
