from .handlers import HANDLERS, JobContext, get_handler
from .repository import JobRepository
from .worker import QueueWorker, WorkerReport, run_worker
