import logging
import re
import threading
import time
import uuid
from collections import OrderedDict, deque
from typing import Deque, Dict, List, Optional

from models import GenerationJob, JobStatus, LogEntry

logger = logging.getLogger("job-store")

JOB_LOGGER_PREFIX = "site-generator.jobs"
JOB_ID_RE = re.compile(r"project-\d+-[0-9a-f]{6}")

ALLOWED = {
    JobStatus.PENDING: {JobStatus.IN_PROGRESS, JobStatus.FAILED},
    JobStatus.IN_PROGRESS: {JobStatus.IN_PROGRESS, JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}

LEVELS = {
    logging.DEBUG: "info",
    logging.INFO: "info",
    logging.WARNING: "warning",
    logging.ERROR: "error",
    logging.CRITICAL: "error",
}


class InvalidTransition(ValueError):
    pass


def new_job_id() -> str:
    return f"project-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


def is_job_id(value: str) -> bool:
    return bool(JOB_ID_RE.fullmatch(value or ""))


def _now_ms() -> int:
    return int(time.time() * 1000)


class JobStore:
    """In-memory job and log store.

    Log buffers are capped at ``max_logs`` entries per job, oldest first out.
    ``max_jobs`` is the retention policy: None keeps every job for the life of
    the process; a number evicts the oldest finished jobs past that count.
    """

    def __init__(self, max_logs: int = 1000, max_jobs: Optional[int] = None):
        self.max_logs = max_logs
        self.max_jobs = max_jobs
        self._jobs: "OrderedDict[str, GenerationJob]" = OrderedDict()
        self._logs: Dict[str, Deque[LogEntry]] = {}
        self._lock = threading.Lock()

    def create(self, job_id: Optional[str] = None, **fields) -> GenerationJob:
        job = GenerationJob(project_id=job_id or new_job_id(), **fields)
        with self._lock:
            if job.project_id in self._jobs:
                raise ValueError(f"Job already exists: {job.project_id}")
            self._jobs[job.project_id] = job
            self._logs.setdefault(job.project_id, deque(maxlen=self.max_logs))
            self._evict()
        return job.model_copy()

    def get(self, job_id: str) -> Optional[GenerationJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy() if job else None

    def transition(self, job_id: str, status: JobStatus, **fields) -> GenerationJob:
        """Move a job to ``status``; terminal jobs never change again."""
        status = JobStatus(status)
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise KeyError(job_id)
            if status not in ALLOWED[job.status]:
                raise InvalidTransition(f"{job_id}: {job.status.value} -> {status.value}")
            updated = job.model_copy(update=dict(fields, status=status))
            self._jobs[job_id] = updated
            return updated.model_copy()

    def update(self, job_id: str, **fields) -> GenerationJob:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise KeyError(job_id)
            if job.status.terminal:
                raise InvalidTransition(f"{job_id} is {job.status.value}")
            updated = job.model_copy(update=fields)
            self._jobs[job_id] = updated
            return updated.model_copy()

    def add_log(self, job_id: str, message: str, level: str = "info") -> None:
        entry = LogEntry(timestamp=_now_ms(), level=level, message=message)
        with self._lock:
            buf = self._logs.get(job_id)
            if buf is None:
                buf = self._logs[job_id] = deque(maxlen=self.max_logs)
            buf.append(entry)

    def logs(self, job_id: str) -> List[LogEntry]:
        with self._lock:
            return list(self._logs.get(job_id, ()))

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def _evict(self) -> None:
        if self.max_jobs is None:
            return
        excess = len(self._jobs) - self.max_jobs
        for job_id in [j for j, job in self._jobs.items() if job.status.terminal][:max(excess, 0)]:
            del self._jobs[job_id]
            self._logs.pop(job_id, None)
            job_log = logging.getLogger(f"{JOB_LOGGER_PREFIX}.{job_id}")
            for h in [h for h in job_log.handlers if isinstance(h, JobLogHandler)]:
                job_log.removeHandler(h)
            logger.info("Evicted job %s", job_id)

    def job_logger(self, job_id: str) -> logging.Logger:
        """A logger whose records land in this job's buffer (and still reach the console)."""
        log = logging.getLogger(f"{JOB_LOGGER_PREFIX}.{job_id}")
        if not any(isinstance(h, JobLogHandler) and h.store is self for h in log.handlers):
            log.addHandler(JobLogHandler(self, job_id))
        log.setLevel(logging.INFO)
        return log


class JobLogHandler(logging.Handler):

    def __init__(self, store: JobStore, job_id: str):
        super().__init__()
        self.store = store
        self.job_id = job_id

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
            if record.exc_info and record.exc_info[1] is not None:
                message = f"{message}: {record.exc_info[1]}"
            self.store.add_log(self.job_id, message, LEVELS.get(record.levelno, record.levelname.lower()))
        except Exception:
            self.handleError(record)
