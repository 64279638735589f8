from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from barbershop.availability import OperatingHours


@dataclass(frozen=True)
class Settings:
    data_file: Path = Path(os.getenv("BARBERSHOP_DATA_FILE", "data/barbershop.xlsx"))
    backup_dir: Path = Path(os.getenv("BARBERSHOP_BACKUP_DIR", "data/backups"))
    lock_file: Path = Path(os.getenv("BARBERSHOP_LOCK_FILE", "data/barbershop.lock"))
    open_hour: int = int(os.getenv("BARBERSHOP_OPEN_HOUR", "10"))
    last_slot_hour: int = int(os.getenv("BARBERSHOP_LAST_SLOT_HOUR", "21"))
    close_hour: int = int(os.getenv("BARBERSHOP_CLOSE_HOUR", "21"))
    slot_step_minutes: int = int(os.getenv("BARBERSHOP_SLOT_STEP_MINUTES", "60"))
    same_day_buffer_minutes: int = int(os.getenv("BARBERSHOP_SAME_DAY_BUFFER_MINUTES", "30"))
    default_duration_minutes: int = int(os.getenv("BARBERSHOP_DEFAULT_DURATION_MINUTES", "60"))
    booking_window_days: int = int(os.getenv("BARBERSHOP_BOOKING_WINDOW_DAYS", "30"))
    log_level: str = os.getenv("BARBERSHOP_LOG_LEVEL", "INFO")

    def operating_hours(self) -> OperatingHours:
        return OperatingHours.hourly_grid(
            first_start=self.open_hour * 60,
            last_start=self.last_slot_hour * 60,
            closing=self.close_hour * 60,
            step=self.slot_step_minutes,
        )


settings = Settings()
