"""
Airtable REST client for activity records and the event log.
"""
import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

AIRTABLE_API_URL = 'https://api.airtable.com/v0'


class AirtableError(Exception):
    """Raised when an Airtable call fails."""

    def __init__(self, status: Optional[int], message: str):
        self.status = status
        self.message = message
        super().__init__(f"Airtable error {status}: {message}")


class AirtableClient:
    """
    Records table ("Pedagogical Outputs") plus an append-only "Event Log" table.
    """

    def __init__(
        self,
        api_key: str,
        base_id: str,
        table_name: str = 'Pedagogical Outputs',
        logs_table_name: str = 'Event Log',
        session: Optional[requests.Session] = None,
        timeout: int = 20,
    ):
        self.base_id = base_id
        self.table_name = table_name
        self.logs_table_name = logs_table_name
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {api_key}',
            'Content-Type': 'application/json',
        })

    def _table_url(self, table: str) -> str:
        return f"{AIRTABLE_API_URL}/{self.base_id}/{quote(table, safe='')}"

    def _request(self, method: str, table: str, **kwargs) -> Dict[str, Any]:
        url = self._table_url(table)
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise AirtableError(None, str(e)) from e

        if not 200 <= response.status_code < 300:
            snippet = response.text[:300] if response.text else ''
            raise AirtableError(response.status_code, snippet)

        try:
            return response.json()
        except ValueError as e:
            raise AirtableError(response.status_code, f"Expected JSON: {response.text[:300]}") from e

    def create_record(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Create one record in the activities table and return it."""
        data = self._request('POST', self.table_name, json={'records': [{'fields': fields}]})
        record = data['records'][0]
        logger.info(f"Airtable record {record['id']} created")
        return record

    def update_record(self, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        data = self._request('PATCH', self.table_name, json={'records': [{'id': record_id, 'fields': fields}]})
        return data['records'][0]

    def _first(self, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        records: List[Dict[str, Any]] = self._request('GET', self.table_name, params=params).get('records', [])
        return records[0] if records else None

    def find_by_run_id(self, run_id: str) -> Optional[Dict[str, Any]]:
        """Return the record whose 'Run ID' matches, or None."""
        escaped = run_id.replace("\\", "\\\\").replace("'", "\\'")
        return self._first({'filterByFormula': f"{{Run ID}} = '{escaped}'", 'maxRecords': 1})

    def latest_record(self) -> Optional[Dict[str, Any]]:
        """Return the most recently created record, or None."""
        return self._first({
            'maxRecords': 1,
            'sort[0][field]': 'Created At',
            'sort[0][direction]': 'desc',
        })

    def append_event_log(
        self,
        event: str,
        level: str = 'info',
        run_id: str = '',
        agent: Optional[str] = None,
        duration_ms: Optional[int] = None,
        message: str = '',
        stack: str = '',
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Write an entry to the event log table.

        Logging never breaks the calling request: failures are logged locally.

        Returns:
            True if the entry was stored, False otherwise
        """
        fields = {
            'Event': event or 'unknown_event',
            'Level': level,
            'Run ID': run_id or '',
            'Agent': agent or '',
            'Duration Ms': duration_ms,
            'Message': message,
            'Stack': stack,
            'Details JSON': json.dumps(details, default=str) if details else '',
        }
        try:
            self._request('POST', self.logs_table_name, json={'records': [{'fields': fields}]})
            return True
        except AirtableError as e:
            logger.error(f"Could not write event '{event}' to Airtable log: {e}")
            return False
