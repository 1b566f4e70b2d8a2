"""
Savefile endpoints.

Export and import a session's filters and boundary as GeoJSON, and keep
named savefiles on the server so work can be resumed later.
"""

import logging

from fastapi import APIRouter, Body, HTTPException

from ltn.api.deps import get_session_or_404, neighbourhood_state, translate_errors
from ltn.models.schemas import (
    LoadSavefileResponse,
    StoreSavefileRequest,
    StoredSavefileInfo,
)
from ltn.services.savefile.savefile_store import get_savefile_store
from ltn.services.session import LTNSession

logger = logging.getLogger(__name__)

router = APIRouter()


def _load(session: LTNSession, savefile: dict) -> LoadSavefileResponse:
    with translate_errors("loading savefile"):
        has_neighbourhood = session.load_savefile(savefile)
        return LoadSavefileResponse(
            has_neighbourhood=has_neighbourhood,
            num_filters=len(session.map.modal_filters),
            state=neighbourhood_state(session),
        )


@router.get("/sessions/{session_id}/savefile")
def export_savefile(session_id: str):
    """Export the session's filters and boundary as a GeoJSON FeatureCollection."""
    session = get_session_or_404(session_id)
    with translate_errors("exporting savefile"):
        return session.to_savefile()


@router.post("/sessions/{session_id}/savefile", response_model=LoadSavefileResponse)
def import_savefile(session_id: str, savefile: dict = Body(...)):
    """
    Replace the session's filters and boundary with a savefile's.

    A savefile that does not fit this map is rejected with 422 and the
    session is left untouched. Loading clears the undo history.
    """
    return _load(get_session_or_404(session_id), savefile)


@router.post("/sessions/{session_id}/savefile/store")
def store_savefile(session_id: str, request: StoreSavefileRequest):
    """Keep the session's current savefile on the server under a name."""
    session = get_session_or_404(session_id)
    store = get_savefile_store()
    if not store.enabled:
        return {"message": "Savefile storage is disabled", "stored": False}

    with translate_errors("storing savefile"):
        stored = store.save(request.name, session.to_savefile(), map_name=session.name)
    if not stored:
        raise HTTPException(status_code=500, detail=f"Could not store savefile {request.name}")
    return {"message": f"Stored savefile {request.name}", "stored": True, "name": request.name}


@router.post(
    "/sessions/{session_id}/savefile/restore/{name}", response_model=LoadSavefileResponse
)
def restore_savefile(session_id: str, name: str):
    """Load a stored savefile into a session."""
    session = get_session_or_404(session_id)
    with translate_errors("reading savefile"):
        stored = get_savefile_store().load(name)
    if stored is None:
        raise HTTPException(status_code=404, detail=f"No stored savefile named {name}")
    return _load(session, stored.savefile)


@router.get("/savefiles")
def list_savefiles():
    store = get_savefile_store()
    return {"enabled": store.enabled, "names": store.list_names()}


@router.get("/savefiles/stats")
def get_savefile_stats():
    """
    Get savefile storage statistics.

    Returns:
        Counts of saves, loads and misses, plus what is on disk.
    """
    store = get_savefile_store()
    return {
        "enabled": store.enabled,
        "savefile_dir": str(store.savefile_dir),
        "stats": store.get_stats().to_dict(),
    }


@router.get("/savefiles/{name}", response_model=StoredSavefileInfo)
def get_stored_savefile(name: str):
    with translate_errors("reading savefile"):
        stored = get_savefile_store().load(name)
    if stored is None:
        raise HTTPException(status_code=404, detail=f"No stored savefile named {name}")
    return StoredSavefileInfo(
        name=stored.name,
        map_name=stored.map_name,
        saved_at=stored.saved_at,
        savefile=stored.savefile,
    )


@router.delete("/savefiles/{name}")
def delete_stored_savefile(name: str):
    with translate_errors("deleting savefile"):
        deleted = get_savefile_store().delete(name)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"No stored savefile named {name}")
    return {"deleted": name}
