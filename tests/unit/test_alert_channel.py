"""AlertChannel 유닛 테스트"""
from unittest.mock import patch

from src.services.impl.alert_channel import AlertChannel


class TestAlertChannel:
    def test_counts_by_kind(self):
        alerts = AlertChannel()
        alerts.critical("auth_failure", "stockx credentials rejected", job_id=1)
        alerts.critical("auth_failure", "stockx credentials rejected", job_id=2)
        alerts.error("provider_metrics", "insert failed")

        assert alerts.count("auth_failure") == 2
        assert alerts.count("provider_metrics") == 1
        assert alerts.count("unknown") == 0
        assert alerts.count() == 3

    @patch("src.services.impl.alert_channel.logger")
    def test_levels(self, mock_logger):
        alerts = AlertChannel()
        alerts.critical("auth_failure", "rejected", job_id=7)
        alerts.error("cache_invalidate", "timeout")

        line = mock_logger.critical.call_args[0][0]
        assert "auth_failure" in line
        assert "job_id=7" in line
        mock_logger.error.assert_called_once()

    @patch("src.services.impl.alert_channel.logger")
    def test_never_raises(self, mock_logger):
        mock_logger.error.side_effect = RuntimeError("handler closed")
        alerts = AlertChannel()

        alerts.error("run_record", "db down")

        assert alerts.count("run_record") == 1
