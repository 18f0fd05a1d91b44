"""
client: Python client for the Page Turner sign-in API.

    async with ApiClient("http://localhost:3001") as api:
        loop = SigninPollLoop(api, brand.data_transform, on_success=show)
        handle = await loop.start()
        # user completes sign-in at handle.url
        records = await loop.run()
"""

from client.api_client import ApiClient, ApiError
from client.poll_loop import SigninPollLoop, SigninState
