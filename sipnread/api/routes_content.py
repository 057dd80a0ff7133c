"""Contenus configurables de l'écran d'accueil (tuiles, pistes audio)."""

from fastapi import APIRouter

from sipnread.core.container import container

router = APIRouter(prefix="/content", tags=["content"])


@router.get("/tiles")
def list_tiles():
    return {"tiles": [t.to_doc() for t in container.content.list_tiles()]}


@router.get("/audio-tracks")
def list_audio_tracks():
    return {"audioTracks": [t.to_doc() for t in container.content.list_audio_tracks()]}
