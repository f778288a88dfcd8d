"""AWS Signature Version 4 signing for storage requests.

The signing algorithm itself is botocore's; this module only adapts a
RequestDescriptor to a botocore AWSRequest and hands back the headers that
botocore added. Credentials are resolved through a boto3 session, so
explicit keys, environment variables and shared config files all work.
"""

from typing import Optional

import boto3
from botocore.auth import S3SigV4Auth
from botocore.awsrequest import AWSRequest

from cloudlink.errors import CloudError
from cloudlink.models import RequestDescriptor

# Headers botocore sets while signing
SIGNED_HEADERS = ("Authorization", "X-Amz-Date", "X-Amz-Content-SHA256", "X-Amz-Security-Token")


class SigV4Signer:
    """Signs descriptors with SigV4 for one set of credentials.

    Args:
        access_key: Access key id; None to use the default credential chain.
        secret_key: Secret access key.
        region_name: Signing region.
        service_name: Signing service name.
        session_token: Optional STS session token.

    Raises:
        CloudError: If no credentials can be resolved.
    """

    def __init__(
        self,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        region_name: str = "us-east-1",
        service_name: str = "s3",
        session_token: Optional[str] = None,
    ):
        session = boto3.session.Session(
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            aws_session_token=session_token,
            region_name=region_name,
        )
        credentials = session.get_credentials()
        if credentials is None:
            raise CloudError("No AWS credentials could be resolved for signing")

        self._credentials = credentials
        self.region_name = session.region_name or region_name
        self.service_name = service_name

    def __call__(self, descriptor: RequestDescriptor, url: str) -> dict[str, str]:
        """Sign a descriptor bound for url.

        Returns:
            The authentication headers to add to the request.
        """
        request = AWSRequest(
            method=descriptor.method.value,
            url=url,
            headers=dict(descriptor.headers.items()),
            data=descriptor.body or b"",
        )
        auth = S3SigV4Auth(
            self._credentials.get_frozen_credentials(),
            self.service_name,
            self.region_name,
        )
        auth.add_auth(request)
        return {
            name: request.headers[name]
            for name in SIGNED_HEADERS
            if name in request.headers
        }
