from unittest.mock import patch

import psutil

from fastrelay.process import ProcessInfo, get_process_info


class TestGetProcessInfo:
    def test_returns_process_info_instance(self):
        process_info = get_process_info()
        assert isinstance(process_info, ProcessInfo)
        assert process_info.running is True
        assert process_info.num_threads >= 1

    def test_missing_process(self):
        with patch("fastrelay.process.psutil.Process", side_effect=psutil.NoSuchProcess(99999)):
            process_info = get_process_info(99999)

        assert process_info.pid == 99999
        assert process_info.name == "unknown"
        assert process_info.running is False
