import logging

import pytest

from groupdav.lib import error
from groupdav.locator import ResourceLocator
from groupdav.protocol.types import Capability
from groupdav.protocol.xml_builders import build_open_tasks_query_body

from .fake_server import FakeGroupwareServer


def todo(uid, summary="Something", status="NEEDS-ACTION"):
    return (
        "BEGIN:VCALENDAR\r\n"
        "VERSION:2.0\r\n"
        "PRODID:-//tests//EN\r\n"
        "BEGIN:VTODO\r\n"
        f"UID:{uid}\r\n"
        "DTSTAMP:20260101T120000Z\r\n"
        f"SUMMARY:{summary}\r\n"
        f"STATUS:{status}\r\n"
        "END:VTODO\r\n"
        "END:VCALENDAR\r\n"
    )


@pytest.fixture
def server():
    server = FakeGroupwareServer()
    server.personal = server.add_calendar("personal", "Personal", ("VEVENT", "VTODO"))
    server.tasks = server.add_calendar("tasks", "Tasks", ("VTODO",))
    return server


class TestLocate:
    def testFoundInSecondCollection(self, server):
        server.store(server.personal, "a.ics", todo("task-a"))
        href = server.store(server.tasks, "b.ics", todo("task-b", "Buy groceries"))
        result = ResourceLocator(server).locate("task-b", Capability.TASK)
        assert result.found
        assert result.failures == []
        assert result.searched == 2
        assert result.resource.href == href
        assert result.resource.etag == server.etag(href)
        assert result.resource.collection_href == server.tasks
        assert "SUMMARY:Buy groceries\r\n" in result.resource.raw_body

    def testStopsAtFirstMatch(self, server):
        server.store(server.personal, "a.ics", todo("task-a"))
        server.store(server.tasks, "a.ics", todo("task-a"))
        result = ResourceLocator(server).locate("task-a", Capability.TASK)
        assert result.resource.collection_href == server.personal
        assert server.methods() == ["PROPFIND", "REPORT"]

    def testSubstringIsNoMatch(self, server):
        server.store(server.personal, "a.ics", todo("task-abc"))
        result = ResourceLocator(server).locate("task-a", Capability.TASK)
        assert not result.found
        assert result.failures == []

    def testCaseSensitive(self, server):
        server.store(server.personal, "a.ics", todo("Task-A"))
        assert not ResourceLocator(server).locate("task-a", Capability.TASK).found

    def testFailingCollectionIsSkipped(self, server, caplog):
        server.failing[server.personal] = error.TransportError(
            url=server.personal, reason="Internal Server Error", status=500
        )
        href = server.store(server.tasks, "b.ics", todo("task-b"))
        with caplog.at_level(logging.WARNING, logger="groupdav"):
            result = ResourceLocator(server).locate("task-b", Capability.TASK)
        assert result.resource.href == href
        assert len(result.failures) == 1
        assert result.failures[0].collection.display_name == "Personal"
        assert result.failures[0].error.status == 500
        assert "Personal" in caplog.text

    def testNotFoundReportsFailures(self, server):
        server.broken[server.tasks] = "<html>oops</html>"
        locator = ResourceLocator(server)
        result = locator.locate("missing", Capability.TASK)
        assert not result.found
        assert result.searched == 2
        assert [f.collection.display_name for f in result.failures] == ["Tasks"]
        with pytest.raises(error.NotFoundError) as excinfo:
            locator.locate_or_raise("missing", Capability.TASK)
        assert excinfo.value.reason == (
            "Task missing not found. 1 of 2 collections could not be searched (Tasks)."
        )

    def testNotFoundEverywhere(self, server):
        with pytest.raises(error.NotFoundError) as excinfo:
            ResourceLocator(server).locate_or_raise("missing", Capability.TASK)
        assert excinfo.value.reason == "Task missing not found."

    def testUnknownCollectionName(self, server):
        with pytest.raises(error.NotFoundError):
            ResourceLocator(server).locate("task-a", Capability.TASK, "Groceries")
        assert "REPORT" not in server.methods()

    def testNamedCollectionOnly(self, server):
        server.store(server.personal, "a.ics", todo("task-a"))
        result = ResourceLocator(server).locate("task-a", Capability.TASK, "Tasks")
        assert not result.found
        assert result.searched == 1

    def testEmptyUid(self, server):
        with pytest.raises(error.InvalidInputError):
            ResourceLocator(server).locate("", Capability.TASK)
        assert server.requests == []

    def testContact(self):
        server = FakeGroupwareServer()
        contacts = server.add_addressbook("contacts", "Contacts")
        href = server.store(
            contacts,
            "c.vcf",
            "BEGIN:VCARD\r\nVERSION:3.0\r\nUID:card-1\r\nFN:John Doe\r\nEND:VCARD\r\n",
        )
        result = ResourceLocator(server).locate("card-1", Capability.CONTACT)
        assert result.resource.href == href


class TestScan:
    def testScanCollectsEverything(self, server):
        server.store(server.personal, "a.ics", todo("task-a"))
        server.store(server.tasks, "b.ics", todo("task-b"))
        server.store(server.tasks, "c.ics", todo("task-c", status="COMPLETED"))
        locator = ResourceLocator(server)
        collections = locator.discovery.find_calendars(Capability.TASK)
        scan = locator.scan(collections, build_open_tasks_query_body())
        assert [(c.display_name, e.href.rsplit("/", 1)[1]) for c, e in scan.matches] == [
            ("Personal", "a.ics"),
            ("Tasks", "b.ics"),
        ]
        assert scan.failures == []

    def testOtherErrorsPropagate(self, server):
        server.failing[server.personal] = KeyError("bug")
        locator = ResourceLocator(server)
        with pytest.raises(KeyError):
            locator.scan(locator.discovery.find_calendars(), build_open_tasks_query_body())
