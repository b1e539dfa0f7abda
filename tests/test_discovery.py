import pytest

from groupdav.discovery import CollectionDiscovery
from groupdav.lib import error
from groupdav.protocol.types import Capability

from .fake_server import FakeGroupwareServer


@pytest.fixture
def server():
    server = FakeGroupwareServer()
    server.add_calendar("personal", "Personal", ("VEVENT", "VTODO"))
    server.add_calendar("work", "Work", ("VEVENT",))
    server.add_calendar("tasks", "Tasks", ("VTODO",))
    server.add_calendar("legacy", "Legacy", ())
    server.add_addressbook("contacts", "Contacts")
    server.add_addressbook("z-app-generated")
    return server


class TestDiscovery:
    def testFindCalendars(self, server):
        calendars = CollectionDiscovery(server).find_calendars()
        assert [c.display_name for c in calendars] == ["Personal", "Work", "Tasks", "Legacy"]
        personal = calendars[0]
        assert personal.href == "/remote.php/dav/calendars/tester/personal/"
        assert personal.capabilities == (Capability.EVENT, Capability.TASK)
        assert personal.capability == Capability.EVENT
        assert calendars[3].capabilities == ()
        assert calendars[3].capability == Capability.UNKNOWN
        assert server.methods() == ["PROPFIND"]
        method, path, headers, body = server.requests[0]
        assert path == server.calendar_home
        assert headers["Depth"] == "1"

    def testFilterByCapability(self, server):
        discovery = CollectionDiscovery(server)
        assert [c.display_name for c in discovery.find_calendars(Capability.TASK)] == [
            "Personal",
            "Tasks",
        ]
        ## undeclared capabilities never match a filter
        assert [c.display_name for c in discovery.find_collections(Capability.EVENT)] == [
            "Personal",
            "Work",
        ]

    def testFindAddressbooks(self, server):
        addressbooks = CollectionDiscovery(server).find_collections(Capability.CONTACT)
        assert [a.display_name for a in addressbooks] == ["Contacts", "z-app-generated"]
        assert addressbooks[0].capabilities == (Capability.CONTACT,)
        assert server.requests[0][1] == server.addressbook_home

    def testNoCaching(self, server):
        discovery = CollectionDiscovery(server)
        assert len(discovery.find_calendars()) == 4
        server.add_calendar("new", "New")
        assert len(discovery.find_calendars()) == 5
        assert server.methods() == ["PROPFIND", "PROPFIND"]

    def testResolve(self, server):
        discovery = CollectionDiscovery(server)
        assert discovery.resolve("Work", Capability.EVENT).href.endswith("/work/")
        assert discovery.resolve(None, Capability.TASK).display_name == "Personal"
        assert discovery.resolve(capability=Capability.CONTACT).display_name == "Contacts"

    def testResolveIsExact(self, server):
        discovery = CollectionDiscovery(server)
        with pytest.raises(error.NotFoundError):
            discovery.resolve("work", Capability.EVENT)

    def testResolveNotFound(self, server):
        discovery = CollectionDiscovery(server)
        with pytest.raises(error.NotFoundError) as excinfo:
            discovery.resolve("Work", Capability.TASK)
        assert excinfo.value.reason == "Task-enabled calendar 'Work' not found."

        empty = FakeGroupwareServer()
        with pytest.raises(error.NotFoundError) as excinfo:
            CollectionDiscovery(empty).resolve(None, Capability.TASK)
        assert excinfo.value.reason == "No task-enabled calendars found."

    def testCandidates(self, server):
        discovery = CollectionDiscovery(server)
        assert [c.display_name for c in discovery.candidates(Capability.TASK)] == [
            "Personal",
            "Tasks",
        ]
        assert [c.display_name for c in discovery.candidates(Capability.TASK, "Tasks")] == [
            "Tasks"
        ]
