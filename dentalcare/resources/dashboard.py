import logging

from ..api_client import expect
from .base import Resource

logger = logging.getLogger(__name__)


class DashboardStatsResource(Resource):
    """Headline figures for the dashboard cards (``{stats}`` legacy body)."""

    name = 'dashboard stats'

    def empty(self):
        return {}

    def load(self):
        payload = self.client.get('/api/dashboard/stats', legacy=True)
        stats = expect(payload, 'stats', dict)
        logger.info(f"✅ Dashboard stats loaded: {stats.get('totalPatients', 0)} patients")
        return stats
