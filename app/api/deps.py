from fastapi.requests import HTTPConnection

from app.services.tracker import Tracker


# --- FastAPI dependency (HTTP and WebSocket) ---
def get_tracker(conn: HTTPConnection) -> Tracker:
    return conn.app.state.tracker
