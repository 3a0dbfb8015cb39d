from ..state import IngestState


def record_node_trace(state: IngestState, node: str) -> None:
    """Append the given node name to the state's trace list.

    Creates the list if missing and updates in place.
    """
    trace = state.get("trace", [])
    trace.append(node)
    state["trace"] = trace


def record_node_error(state: IngestState, node: str, error: Exception) -> None:
    """Append `"<node>: <ExceptionType>: <message>"` to the state's error list."""
    errors = state.get("errors", [])
    errors.append(f"{node}: {type(error).__name__}: {error}")
    state["errors"] = errors


__all__ = ["record_node_trace", "record_node_error"]
