"""
Qase API Service - Handles initialization and configuration of the Qase API client.
"""
from qase.api_client_v1.api_client import ApiClient
from qase.api_client_v1.configuration import Configuration
import certifi


class QaseService:
    """Service class for reading suites and test cases from the Qase API."""
    
    def __init__(self, api_token: str, host: str = "qase.io", ssl: bool = True,
                 enterprise: bool = False):
        """
        Initialize Qase API client.
        
        Args:
            api_token: Qase API token
            host: Qase host (default: "qase.io")
            ssl: Use SSL (default: True)
            enterprise: Is enterprise instance (default: False)
        """
        if not api_token:
            raise ValueError("Qase API token is required")
        
        self.api_token = api_token
        self.host = host
        self.ssl = ssl
        self.enterprise = enterprise
        
        # Cloud: api.qase.io/v1
        # Enterprise custom domain: api-{host}/v1
        ssl_prefix = 'https://' if ssl else 'http://'
        delimiter = '.' if not enterprise or host == 'qase.io' else '-'
        
        configuration = Configuration()
        configuration.api_key['TokenAuth'] = api_token
        configuration.host = f'{ssl_prefix}api{delimiter}{host}/v1'
        configuration.ssl_ca_cert = certifi.where()
        self.client = ApiClient(configuration)
