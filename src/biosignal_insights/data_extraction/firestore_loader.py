import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

import firebase_admin
import numpy as np
import pandas as pd
from firebase_admin import credentials
from firebase_admin import firestore as firebase_firestore
from google.cloud import firestore

from biosignal_insights.data_extraction.constants import (
    AFFDEX_SENSOR, INTERVALS_SUBCOLLECTION, MAX_BATCH_WRITES,
    METRIC_ROWS_SUBCOLLECTION, PSD_SENSOR)
from biosignal_insights.data_extraction.models import Respondent
from biosignal_insights.data_extraction.reshape import (
    construct_interval_frame, construct_psd_frame, construct_sample_frame)
from biosignal_insights.data_extraction.utils import format_firestore_timestamp
from biosignal_insights.pipeline.config import Settings

logger = logging.getLogger(__name__)


def build_firestore_client(settings: Settings) -> firestore.Client:
    """Initialise the default firebase app once and return its Firestore client."""
    try:
        firebase_admin.get_app()
    except ValueError:
        if settings.credentials_path:
            cred = credentials.Certificate(settings.credentials_path)
        else:
            cred = credentials.ApplicationDefault()
        firebase_admin.initialize_app(cred)
        logger.info("firebase app initialised")
    return firebase_firestore.client()


def _to_native(value: Any) -> Any:
    """Firestore only accepts builtin types; NaN becomes null."""
    if value is None:
        return None
    if isinstance(value, (float, np.floating)) and np.isnan(value):
        return None
    if isinstance(value, np.generic):
        return value.item()
    return value


class _BatchWriter:
    """Queues writes and commits a batch every ``MAX_BATCH_WRITES`` operations."""

    def __init__(self, client: firestore.Client):
        self.client = client
        self.batch = client.batch()
        self.pending = 0

    def set(self, ref, data: Dict[str, Any]) -> None:
        self.batch.set(ref, data)
        self._count()

    def delete(self, ref) -> None:
        self.batch.delete(ref)
        self._count()

    def _count(self) -> None:
        self.pending += 1
        if self.pending == MAX_BATCH_WRITES:
            self.flush()

    def flush(self) -> None:
        if not self.pending:
            return
        self.batch.commit()
        self.batch = self.client.batch()
        self.pending = 0


class FirestoreStudyClient:
    """
    Study data access backed by Firestore.

    Layout::

        studies/{study}/respondents/{respondent_id}
            fields: name, device, stimuli[], segments[]
            sensor_data/{doc}   timestamp, stimulus, sensor, device,
                                bands{band: {channel: value}} or channels{...}
            intervals/{doc}     stimulus, name, start, end
        studies/{study}/metrics/{name}
            rows/{index}
    """

    def __init__(self, firestore_client: firestore.Client, settings: Optional[Settings] = None):
        self.client = firestore_client
        self.settings = settings or Settings()

    def _study(self, study: str):
        return self.client.collection(self.settings.studies_collection).document(study)

    def _respondent(self, study: str, respondent_id: str):
        return (
            self._study(study)
            .collection(self.settings.respondents_subcollection)
            .document(respondent_id)
        )

    def list_respondents(
        self, study: str, stimulus: str, segment: Optional[str] = None
    ) -> List[Respondent]:
        """
        Respondents exposed to ``stimulus``, optionally restricted to ``segment``.

        Sorted by id so that downstream results do not depend on query order.
        """
        query = (
            self._study(study)
            .collection(self.settings.respondents_subcollection)
            .where("stimuli", "array_contains", stimulus)
        )
        respondents = []
        for doc in query.stream():
            data = doc.to_dict() or {}
            segments = tuple(data.get("segments") or ())
            # firestore allows a single array_contains per query
            if segment is not None and segment not in segments:
                continue
            respondents.append(
                Respondent(
                    id=doc.id,
                    name=data.get("name", ""),
                    device=data.get("device"),
                    segments=segments,
                )
            )
        return sorted(respondents, key=lambda r: r.id)

    def _sensor_records(
        self, study: str, respondent: Respondent, stimulus: str, sensor: str
    ) -> List[Dict[str, Any]]:
        query = (
            self._respondent(study, respondent.id)
            .collection(self.settings.sensor_subcollection)
            .where("stimulus", "==", stimulus)
            .where("sensor", "==", sensor)
            .order_by("timestamp")
        )
        return [doc.to_dict() for doc in query.stream()]

    def fetch_respondent_series(
        self,
        study: str,
        respondent: Respondent,
        stimulus: str,
        band_pattern: Optional[str] = None,
    ) -> pd.DataFrame:
        """
        PSD samples of one respondent under one stimulus, in long format.

        No sensor documents and documents without matching bands both give an
        empty frame; only transport failures raise.
        """
        records = self._sensor_records(study, respondent, stimulus, PSD_SENSOR)
        frame = construct_psd_frame(
            records, respondent.id, band_pattern=band_pattern, device_id=respondent.device
        )
        if frame.empty:
            logger.info("no PSD data for respondent %s on %s", respondent.id, stimulus)
        return frame

    def fetch_respondent_samples(
        self,
        study: str,
        respondent: Respondent,
        stimulus: str,
        channels: Optional[Sequence[str]] = None,
    ) -> pd.DataFrame:
        """Facial-expression channel samples of one respondent under one stimulus."""
        records = self._sensor_records(study, respondent, stimulus, AFFDEX_SENSOR)
        return construct_sample_frame(records, respondent.id, channels)

    def fetch_intervals(self, study: str, respondent: Respondent, stimulus: str) -> pd.DataFrame:
        query = (
            self._respondent(study, respondent.id)
            .collection(INTERVALS_SUBCOLLECTION)
            .where("stimulus", "==", stimulus)
        )
        return construct_interval_frame((doc.to_dict() for doc in query.stream()), respondent.id)

    def upload_result(
        self,
        params: Mapping[str, Any],
        study: str,
        table: pd.DataFrame,
        segment: Optional[str],
        name: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Store ``table`` as the metric series ``name`` of ``study``.

        Rows go to the metric's ``rows`` subcollection in batched writes; rows
        left over from an earlier, longer upload under the same name are
        deleted. The metric document (parameters, metadata, row count) is
        written last, once every row batch has been committed. Returns the
        document path.
        """
        metric_ref = (
            self._study(study).collection(self.settings.metrics_subcollection).document(name)
        )
        rows_ref = metric_ref.collection(METRIC_ROWS_SUBCOLLECTION)
        row_ids = [f"{index:06d}" for index in range(len(table))]

        writer = _BatchWriter(self.client)
        for index, row in enumerate(table.to_dict(orient="records")):
            doc = {"index": index}
            doc.update({str(k): _to_native(v) for k, v in row.items()})
            writer.set(rows_ref.document(row_ids[index]), doc)

        current = set(row_ids)
        stale = 0
        for old in rows_ref.stream():
            if old.id not in current:
                writer.delete(old.reference)
                stale += 1
        writer.flush()
        if stale:
            logger.info("deleted %d stale rows of %s/%s", stale, study, name)

        metric_ref.set(
            {
                "name": name,
                "segment": segment,
                "params": {k: _to_native(v) for k, v in params.items()},
                "metadata": {k: _to_native(v) for k, v in (metadata or {}).items()},
                "columns": [str(c) for c in table.columns],
                "n_rows": int(len(table)),
                "created_at": format_firestore_timestamp(datetime.now(timezone.utc)),
            }
        )
        logger.info("uploaded %d rows to %s/%s", len(table), study, name)
        return metric_ref.path
