from .store import Draft, DraftStore, DraftStoreError, DynamoDraftStore, FileDraftStore, create_store
from .submitter import BookingSubmitter, SubmissionError, SubmissionReceipt
from .queue import OfflineQueue, ReplayReport
from .connectivity import ConnectivityMonitor, ReplayWorker, Subscription
