import threading

import requests

from sources.http import HttpClient


def test_session_is_reused_within_a_thread():
    client = HttpClient()

    assert client.session is client.session


def test_each_thread_gets_its_own_session():
    client = HttpClient()
    sessions = []

    def grab():
        sessions.append(client.session)

    threads = [threading.Thread(target=grab) for _ in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len({id(session) for session in sessions}) == 3
    assert client.session not in sessions


def test_sessions_retry_transient_statuses():
    client = HttpClient(retries=4)

    retry = client.session.get_adapter("https://senkuro.me").max_retries

    assert retry.total == 4
    assert 503 in retry.status_forcelist


def test_explicit_session_is_shared():
    session = requests.Session()
    client = HttpClient(session=session)
    seen = []

    thread = threading.Thread(target=lambda: seen.append(client.session))
    thread.start()
    thread.join()

    assert seen == [session]
    assert client.session is session
