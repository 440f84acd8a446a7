import logging

from ..api_client import ApiError, HttpError, expect
from ..config import Config
from ..qr_tokens import QRTokenError, consume, generation_request, registration_url, token_stats
from ..schemas import QRToken
from .base import MutationResult, Resource, parse_row, parse_rows

logger = logging.getLogger(__name__)


class QRTokensResource(Resource):
    """Registration tokens for the admin QR screens and the mobile flow."""

    name = 'qr tokens'

    def __init__(self, client, site_url=None):
        self.site_url = site_url or Config.SITE_URL
        self.validated = None
        super().__init__(client)

    def load(self):
        payload = self.client.get('/api/qr-tokens')
        tokens = parse_rows(QRToken, expect(payload, 'tokens'), 'qr tokens')
        for token in tokens:
            if not token.get('registration_url'):
                token['registration_url'] = registration_url(self.site_url, token)
        logger.info(f"✅ Loaded {len(tokens)} QR tokens")
        return tokens

    def stats(self, now=None):
        return token_stats(self.data, now)

    def _generate(self, qr_type, expiration_hours, note):
        params = generation_request(qr_type, expiration_hours, note)
        payload = self.client.get('/api/qr-registration', params=params)
        if not payload.get('registration_url'):
            payload['registration_url'] = registration_url(self.site_url, payload)
        logger.info(f"✅ Generated {qr_type} QR token")
        return payload

    def generate(self, qr_type, expiration_hours=24, note=None):
        return self.mutate(self._generate, qr_type, expiration_hours, note)

    def get_token(self, token_id):
        payload = self.client.get(f"/api/qr-tokens/{token_id}")
        row = payload.get('token') if isinstance(payload.get('token'), dict) else payload
        return parse_row(QRToken, row, 'qr token')

    def delete_token(self, token_id):
        return self.mutate(lambda: self.client.delete(f"/api/qr-tokens/{token_id}"))

    def cleanup_expired(self):
        return self.mutate(lambda: self.client.delete('/api/qr-registration'))

    def validate_token(self, token):
        """
        True when the backend accepts ``token`` for registration

        The backend answers ``{valid, reason}`` or ``{valid, token: {...}}``;
        an accepted token's details are kept in ``validated``.
        """
        try:
            payload = self.client.post('/api/qr-tokens/validate', json={'token': token})
        except HttpError as e:
            logger.info(f"QR token rejected: {e}")
            return False
        except ApiError as e:
            logger.error(f"❌ Token validation error: {e}")
            return False
        if not payload.get('valid'):
            logger.info(f"QR token rejected: {payload.get('reason') or 'not valid'}")
            return False
        details = payload.get('token') if isinstance(payload.get('token'), dict) else {}
        self.validated = dict(details, token=token, used=False)
        return True

    def _held(self, token):
        """Locally known copy of ``token``: the loaded list first, then the last validated one."""
        for row in self.data:
            if row.get('token') == token:
                return row
        if self.validated and self.validated.get('token') == token:
            return self.validated
        return None

    def _store(self, token, row):
        self.data = [row if r.get('token') == token else r for r in self.data]
        if self.validated and self.validated.get('token') == token:
            self.validated = row

    def register_patient(self, token, patient_data, now=None):
        """
        Register through a token; the backend consumes it atomically

        A locally known copy of the token is checked before sending and
        counted after a successful registration, so a single-use token seen
        as used here is refused without a backend call.
        """
        held = self._held(token)
        updated = None
        if held is not None:
            try:
                updated = consume(held, now)
            except QRTokenError as e:
                logger.warning(f"⚠️ Registration refused for token {held.get('id')}: {e}")
                return MutationResult(False, error=str(e))

        result = self.mutate(
            lambda: self.client.post('/api/qr-registration', json={'token': token, 'patient_data': patient_data}),
            refetch=False,
        )
        if result.success and updated is not None:
            self._store(token, updated)
        return result
