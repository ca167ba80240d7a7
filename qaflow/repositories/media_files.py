from __future__ import annotations

from typing import Any

from qaflow.db.postgres import PostgresTxRunner, validate_identifier

_COLUMNS = ("media_file_id", "uploader_id", "file_name", "file_type", "file_size", "storage_url", "created_at")


class InMemoryMediaFilesRepository:
    def __init__(self, media_files: dict[str, dict[str, Any]]) -> None:
        self._media_files = media_files

    def insert(self, *, media_file: dict[str, Any]) -> dict[str, Any]:
        item = {key: media_file.get(key) for key in _COLUMNS}
        self._media_files[str(item["media_file_id"])] = item
        return dict(item)

    def get_many(self, *, media_file_ids: list[str]) -> list[dict[str, Any]]:
        return [dict(self._media_files[x]) for x in media_file_ids if x in self._media_files]

    def owned_ids(self, *, media_file_ids: list[str], uploader_id: str) -> set[str]:
        return {
            x
            for x in media_file_ids
            if x in self._media_files and self._media_files[x].get("uploader_id") == uploader_id
        }


class PostgresMediaFilesRepository:
    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "media_files") -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)

    def insert(self, *, media_file: dict[str, Any]) -> dict[str, Any]:
        item = {key: media_file.get(key) for key in _COLUMNS}
        sql = f"""
            INSERT INTO {self._table_name} (
                media_file_id, uploader_id, file_name, file_type, file_size, storage_url, created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s)
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(sql, tuple(item[key] for key in _COLUMNS))
            return item

        return self._tx_runner.run_in_tx(fn=_op)

    def get_many(self, *, media_file_ids: list[str]) -> list[dict[str, Any]]:
        if not media_file_ids:
            return []
        sql = f"""
            SELECT media_file_id, uploader_id, file_name, file_type, file_size, storage_url, created_at
            FROM {self._table_name}
            WHERE media_file_id = ANY(%s)
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (list(media_file_ids),))
                rows = cur.fetchall() or []
            by_id = {row[0]: dict(zip(_COLUMNS, row)) for row in rows}
            return [by_id[x] for x in media_file_ids if x in by_id]

        return self._tx_runner.run_in_tx(fn=_op)

    def owned_ids(self, *, media_file_ids: list[str], uploader_id: str) -> set[str]:
        if not media_file_ids:
            return set()
        sql = f"SELECT media_file_id FROM {self._table_name} WHERE media_file_id = ANY(%s) AND uploader_id = %s"

        def _op(conn: Any) -> set[str]:
            with conn.cursor() as cur:
                cur.execute(sql, (list(media_file_ids), uploader_id))
                rows = cur.fetchall() or []
            return {str(row[0]) for row in rows}

        return self._tx_runner.run_in_tx(fn=_op)
