from gridclient.core import GridClientConfig, setup_logger, logger
from gridclient.transport import Transport, RequestsTransport, HttpResponse
