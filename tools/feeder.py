from __future__ import annotations
import argparse
import logging
import random
import time
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional

import pandas as pd
import requests

logger = logging.getLogger("feeder")

SEISMIC_ALERT_MAGNITUDE = 4.0
BP_PATTERN = r"^\s*(\d+(?:\.\d+)?)\s*/\s*(\d+(?:\.\d+)?)\s*$"

# CSV columns -> (block, field) of the reading document
CSV_FIELDS = {
    "heartRate": ("vitalSigns", "heartRate"),
    "bloodPressure": ("vitalSigns", "bloodPressure"),
    "dialysisProgress": ("vitalSigns", "dialysisProgress"),
    "flowRate": ("fluidManagement", "flowRate"),
    "pressureDrop": ("fluidManagement", "pressureDrop"),
    "ultrafiltration": ("fluidManagement", "ultrafiltration"),
    "fluidRemoved": ("fluidManagement", "fluidRemoved"),
    "temperature": ("environmental", "temperature"),
    "humidity": ("environmental", "humidity"),
    "magnitude": ("seismic", "magnitude"),
}


def synthetic_reading(step: int, total: int, rng: random.Random) -> Dict:
    progress = round(min(100.0, 100.0 * (step + 1) / total), 1)
    quake = rng.random() < 0.05
    magnitude = round(rng.uniform(4.0, 6.5) if quake else rng.uniform(0.0, 1.5), 2)
    return {
        "vitalSigns": {
            "heartRate": rng.randint(65, 95),
            "bloodPressure": f"{rng.randint(110, 135)}/{rng.randint(70, 88)}",
            "dialysisProgress": progress,
        },
        "fluidManagement": {
            "flowRate": rng.randint(280, 320),
            "pressureDrop": round(rng.uniform(0.5, 2.0), 2),
            "ultrafiltration": round(rng.uniform(8.0, 12.0), 1),
            "fluidRemoved": round(2.5 * progress / 100.0, 2),
        },
        "stabilization": {
            "gyroStatus": "compensating" if quake else "stable",
            "dampening": round(rng.uniform(85, 99), 1),
            "platformTilt": round(rng.uniform(0.0, 2.5 if quake else 0.3), 2),
            "emergencyLocks": "engaged" if quake else "ready",
        },
        "environmental": {
            "temperature": round(rng.uniform(21.0, 23.5), 1),
            "humidity": rng.randint(40, 55),
            "powerSupply": "backup" if quake else "main",
            "backupBattery": f"{rng.randint(90, 100)}%",
        },
        "seismic": {
            "magnitude": magnitude,
            "pWaveStatus": "detected" if quake else "monitoring",
            "lastEvent": "now" if quake else "none",
        },
    }


def csv_readings(path: str) -> Iterator[Dict]:
    df = pd.read_csv(path)
    unknown = set(df.columns) - set(CSV_FIELDS)
    if unknown:
        raise ValueError(f"Unsupported CSV columns: {sorted(unknown)}")
    for row in df.to_dict(orient="records"):
        reading: Dict[str, Dict] = {}
        for column, value in row.items():
            if pd.isna(value):
                continue
            block, field = CSV_FIELDS[column]
            reading.setdefault(block, {})[field] = value.item() if hasattr(value, "item") else value
        yield reading


def flatten(readings: List[Dict]) -> pd.DataFrame:
    return pd.json_normalize(readings)


def summarize_session(readings: List[Dict], started: datetime, ended: datetime,
                      incidents: List[str]) -> Dict:
    """Build the report summary strings the service archives verbatim."""
    df = flatten(readings)

    def col(name: str) -> pd.Series:
        return df[name].dropna() if name in df.columns else pd.Series(dtype=float)

    heart = col("vitalSigns.heartRate")
    progress = col("vitalSigns.dialysisProgress")
    fluid = col("fluidManagement.fluidRemoved")
    magnitude = col("seismic.magnitude")
    pressure = col("vitalSigns.bloodPressure")

    # Only "systolic/diastolic" values count; anything else is skipped
    parts = pressure.astype(str).str.extract(BP_PATTERN).dropna().astype(float)
    if not parts.empty:
        avg_bp = f"{parts[0].mean():.0f}/{parts[1].mean():.0f} mmHg"
    else:
        avg_bp = "N/A"

    minutes = max(0.0, (ended - started).total_seconds() / 60.0)
    quakes = int((magnitude >= SEISMIC_ALERT_MAGNITUDE).sum())
    return {
        "sessionDuration": f"{minutes:.1f} min",
        "dialysisProgress": f"{progress.iloc[-1]:.1f}%" if not progress.empty else "N/A",
        "avgHeartRate": f"{heart.mean():.0f} bpm" if not heart.empty else "N/A",
        "avgBloodPressure": avg_bp,
        "fluidRemoved": f"{fluid.max():.2f} L" if not fluid.empty else "N/A",
        "seismicEvents": str(quakes),
        "emergencyIncidents": incidents,
        "recommendations": (
            "Review seismic incident log before next session" if quakes
            else "Continue standard treatment schedule"
        ),
    }


def post(url: str, payload: Dict, method: str = "post") -> Optional[Dict]:
    r = requests.request(method, url, json=payload, timeout=30)
    if not r.ok:
        logger.error("%s %s failed: %s %s", method.upper(), url, r.status_code, r.text)
        return None
    return r.json()


def main():
    ap = argparse.ArgumentParser(description="Feed simulated dialysis readings to the record service")
    ap.add_argument("--api", default="http://localhost:3001")
    ap.add_argument("--patient-id", required=True)
    ap.add_argument("--csv", help="Replay readings from a CSV instead of simulating")
    ap.add_argument("--count", type=int, default=60, help="Number of simulated readings")
    ap.add_argument("--interval", type=float, default=1.0, help="Seconds between readings")
    ap.add_argument("--seed", type=int, default=None)
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO)
    rng = random.Random(args.seed)

    started = datetime.now(timezone.utc)
    session = post(f"{args.api}/api/sessions", {"patientId": args.patient_id, "startTime": started.isoformat()})
    if session is None:
        raise SystemExit(1)
    session_id = session["sessionId"]
    logger.info("Opened session %s", session_id)

    source = csv_readings(args.csv) if args.csv else (
        synthetic_reading(i, args.count, rng) for i in range(args.count)
    )

    sent: List[Dict] = []
    incidents: List[str] = []
    for reading in source:
        ts = datetime.now(timezone.utc)
        payload = {"sessionId": session_id, "timestamp": ts.isoformat(), **reading}
        if post(f"{args.api}/api/readings", payload) is not None:
            sent.append(reading)

        magnitude = reading.get("seismic", {}).get("magnitude") or 0.0
        if magnitude >= SEISMIC_ALERT_MAGNITUDE:
            response = "platform stabilised, locks engaged"
            post(f"{args.api}/api/emergency", {
                "sessionId": session_id, "type": "earthquake",
                "magnitude": magnitude, "response": response,
            })
            incidents.append(f"{ts:%H:%M:%S} M{magnitude:.1f} earthquake: {response}")
        time.sleep(args.interval)

    ended = datetime.now(timezone.utc)
    if not sent:
        logger.warning("No readings were accepted; leaving session %s interrupted", session_id)
        post(f"{args.api}/api/sessions/{session_id}", {"status": "interrupted", "endTime": ended.isoformat()}, "patch")
        raise SystemExit(1)

    minutes = (ended - started).total_seconds() / 60.0
    post(f"{args.api}/api/sessions/{session_id}", {
        "status": "completed", "endTime": ended.isoformat(), "totalDuration": round(minutes, 2),
    }, "patch")

    report = post(f"{args.api}/api/reports", {
        "patientId": args.patient_id,
        "sessionId": session_id,
        "timestamp": ended.isoformat(),
        **summarize_session(sent, started, ended, incidents),
    })
    if report is not None:
        logger.info("Archived report %s", report["reportId"])

if __name__ == "__main__":
    main()
