"""
Data extraction constants for the study Firestore layout.
"""
STUDIES_COLLECTION = "studies"
RESPONDENTS_SUBCOLLECTION = "respondents"
SENSOR_SUBCOLLECTION = "sensor_data"
METRICS_SUBCOLLECTION = "metrics"
METRIC_ROWS_SUBCOLLECTION = "rows"
INTERVALS_SUBCOLLECTION = "intervals"

PSD_SENSOR = "eeg_psd"
AFFDEX_SENSOR = "affdex"

# Firestore caps a batched write at 500 operations
MAX_BATCH_WRITES = 500

PSD_COLUMNS = [
    "respondent_id",
    "device_id",
    "timestamp",
    "band",
    "channel",
    "value",
]

SAMPLE_COLUMNS = ["respondent_id", "timestamp", "channel", "value"]

INTERVAL_COLUMNS = ["respondent_id", "interval", "start", "end"]
