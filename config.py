"""
config.py
Central configuration for the stream watchdog.
Contains the monitored topics, their frequency thresholds, and the demo feeds.
"""

from pathlib import Path

# --- Base Paths ---
BASE_DIR = Path(__file__).resolve().parent
LOG_DIR = BASE_DIR / "data" / "logs"

# --- Watchdog Parameters ---
WATCHDOG = {
    "rate": 10.0,  # Hz, aggregation / status publish rate
    "cmd_in_topic": "cmd_vel_in",
    "cmd_out_topic": "cmd_vel_out",
    "status_topic": "status",
    "info_topic": "info",
    "topics": [
        {
            "name": "lidar",
            "topic_name": "/lidar/points",
            "min_freq": 8.0,
            "use_average": False,
            "monitoring_rate": 10.0,
            "max_samples": 512,
        },
        {
            "name": "imu",
            "topic_name": "/imu/data",
            "min_freq": 50.0,   # evaluated at 10 Hz (monitoring_rate)
            "use_average": True,
            "monitoring_rate": 10.0,
            "max_samples": 1024,
        },
        {
            "name": "gps",
            "topic_name": "/gps/fix",
            "min_freq": 2.0,
            "use_average": False,
            "monitoring_rate": 10.0,
            "max_samples": 64,
        },
    ],
}

# --- Simulated Feeds (stand-alone runs) ---
SIMULATION = {
    "seed": 7,
    "feeds": [
        {"topic_name": "/lidar/points", "rate": 10.0, "jitter": 0.005},
        {"topic_name": "/imu/data", "rate": 100.0, "jitter": 0.001},
        {"topic_name": "/gps/fix", "rate": 5.0},
    ],
    "command": {"topic_name": "cmd_vel_in", "rate": 20.0, "linear_x": 1.0, "angular_z": 0.1},
}

# --- Logging ---
LOGGING = {
    "level": "INFO",
    "log_to_file": False,
    "filename": str(LOG_DIR / "watchdog.log"),
}
