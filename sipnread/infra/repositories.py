"""
Repositories pour la gestion des données.

Collections de documents JSON (lectures, demandes personnalisées, profils, mails, tuiles,
pistes audio) et comptes utilisateurs, avec des versions en mémoire et Redis.
Les requêtes filtrent par égalité (ou appartenance à un ensemble de valeurs) et trient sur un
champ; les horodatages étant stockés en ISO-8601 UTC, le tri lexicographique est chronologique.
"""

import json
from collections.abc import Collection, Iterable
from typing import Any

import redis

from sipnread.domain.errors import RemoteCallError


def _matches(doc: dict[str, Any], where: dict[str, Any]) -> bool:
    for field, expected in where.items():
        value = doc.get(field)
        if isinstance(expected, Collection) and not isinstance(expected, str):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def _select(
    docs: Iterable[dict[str, Any]],
    where: dict[str, Any] | None,
    order_by: str | None,
    descending: bool,
    limit: int | None,
) -> list[dict[str, Any]]:
    out = [d for d in docs if _matches(d, where or {})]
    if order_by:
        # documents sans la clé de tri en dernier
        present = [d for d in out if d.get(order_by) is not None]
        missing = [d for d in out if d.get(order_by) is None]
        present.sort(key=lambda d: d[order_by], reverse=descending)
        out = present + missing
    return out[:limit] if limit is not None else out


class InMemoryCollection:
    """
    Collection de documents en mémoire (utilisée pour dev/tests).

    Stocke les documents dans un dict local, non persistant.
    """

    def __init__(self, name: str):
        """Initialise une collection mémoire vide."""
        self.name = name
        self._db: dict[str, dict[str, Any]] = {}

    def save(self, doc: dict[str, Any]) -> dict[str, Any]:
        """Enregistre/écrase un document (clé `id`) et le renvoie."""
        self._db[doc["id"]] = json.loads(json.dumps(doc))
        return doc

    def get(self, doc_id: str) -> dict[str, Any] | None:
        """Retourne un document par id, ou None s'il est absent."""
        doc = self._db.get(doc_id)
        return json.loads(json.dumps(doc)) if doc is not None else None

    def delete(self, doc_id: str) -> None:
        self._db.pop(doc_id, None)

    def query(
        self,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Filtre puis trie les documents."""
        docs = (json.loads(json.dumps(d)) for d in self._db.values())
        return _select(docs, where, order_by, descending, limit)


class RedisCollection:
    """Collection adossée à Redis (clé: `{name}:{id}`, ensemble des ids: `{name}:ids`)."""

    def __init__(self, url: str, name: str, client: redis.Redis | None = None):
        """Crée (ou réutilise) un client Redis à partir de l'URL fournie."""
        self.name = name
        self.client = client or redis.Redis.from_url(url, decode_responses=True)
        self.ids_key = f"{name}:ids"

    def _key(self, doc_id: str) -> str:
        return f"{self.name}:{doc_id}"

    def save(self, doc: dict[str, Any]) -> dict[str, Any]:
        """Sérialise en JSON et stocke le document, puis l'indexe."""
        try:
            pipe = self.client.pipeline()
            pipe.set(self._key(doc["id"]), json.dumps(doc))
            pipe.sadd(self.ids_key, doc["id"])
            pipe.execute()
        except redis.RedisError as err:
            raise RemoteCallError("redis", f"Failed to save {self.name}: {err}") from err
        return doc

    def get(self, doc_id: str) -> dict[str, Any] | None:
        """Charge et désérialise `{name}:{id}`, si présent."""
        try:
            raw = self.client.get(self._key(doc_id))
        except redis.RedisError as err:
            raise RemoteCallError("redis", f"Failed to read {self.name}: {err}") from err
        return json.loads(raw) if raw else None

    def delete(self, doc_id: str) -> None:
        try:
            pipe = self.client.pipeline()
            pipe.delete(self._key(doc_id))
            pipe.srem(self.ids_key, doc_id)
            pipe.execute()
        except redis.RedisError as err:
            raise RemoteCallError("redis", f"Failed to delete {self.name}: {err}") from err

    def query(
        self,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Charge tous les documents de la collection puis filtre/trie côté client."""
        try:
            ids = sorted(self.client.smembers(self.ids_key) or [])
            raws = self.client.mget([self._key(i) for i in ids]) if ids else []
        except redis.RedisError as err:
            raise RemoteCallError("redis", f"Failed to query {self.name}: {err}") from err
        docs = (json.loads(r) for r in raws if r)
        return _select(docs, where, order_by, descending, limit)


class InMemoryUserRepo:
    """Dépôt utilisateurs en mémoire (email indexée par scan simple)."""

    def __init__(self):
        """Initialise une base mémoire vide."""
        self._db: dict[str, dict[str, Any]] = {}

    def get(self, user_id: str) -> dict[str, Any] | None:
        return self._db.get(user_id)

    def get_by_email(self, email: str) -> dict[str, Any] | None:
        """Recherche un utilisateur par email."""
        return next((u for u in self._db.values() if u.get("email") == email), None)

    def save(self, user: dict[str, Any]) -> dict[str, Any]:
        """Sauvegarde un utilisateur."""
        self._db[user["id"]] = user
        return user


class RedisUserRepo:
    """Dépôt utilisateurs via Redis avec index email->id (hash)."""

    def __init__(self, url: str, client: redis.Redis | None = None):
        """Crée un client Redis à partir de l'URL fournie."""
        self.client = client or redis.Redis.from_url(url, decode_responses=True)
        self.idx_key = "user:idx:email"

    def get(self, user_id: str) -> dict[str, Any] | None:
        raw = self.client.get(f"user:{user_id}")
        return json.loads(raw) if raw else None

    def get_by_email(self, email: str) -> dict[str, Any] | None:
        """Recherche un utilisateur par email via l'index Redis."""
        user_id = self.client.hget(self.idx_key, email)
        if not user_id:
            return None
        return self.get(user_id)

    def save(self, user: dict[str, Any]) -> dict[str, Any]:
        """Sauvegarde un utilisateur et met à jour l'index email."""
        pipe = self.client.pipeline()
        pipe.set(f"user:{user['id']}", json.dumps(user))
        pipe.hset(self.idx_key, user["email"], user["id"])
        pipe.execute()
        return user


COLLECTIONS = ("readings", "personalized_readings", "profiles", "mail", "tiles", "audio_tracks")


def build_collections(redis_url: str | None) -> dict[str, Any]:
    """Construit les collections nommées (Redis si une URL est fournie, mémoire sinon)."""
    if redis_url:
        client = redis.Redis.from_url(redis_url, decode_responses=True)
        client.ping()
        return {name: RedisCollection(redis_url, name, client=client) for name in COLLECTIONS}
    return {name: InMemoryCollection(name) for name in COLLECTIONS}
