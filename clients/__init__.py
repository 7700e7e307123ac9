# Infrastructure clients
from clients.backend_client import BackendClient, TransportError
