from recording_transfer_agent.services.recordings_log import RecordingsLog


def test_log_is_bounded_and_keeps_newest():
    log = RecordingsLog(limit=2)
    for i in range(3):
        log.append({"jobId": str(i)})
    assert [x["jobId"] for x in log.list()] == ["1", "2"]
    assert len(log) == 2


def test_clear_reports_removed_count():
    log = RecordingsLog(limit=5)
    log.append({"jobId": "1"})
    assert log.clear() == 1
    assert log.list() == []
    assert log.clear() == 0
