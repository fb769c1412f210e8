from .base import BookingClient, BookingClientError
from .client_factory import create_client, load_client_from_config
from .acuity_client import AcuityClient
from .peek_client import PeekClient
