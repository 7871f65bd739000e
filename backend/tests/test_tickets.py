import re

from sqlmodel import Session, select

from conftest import create_ticket, login
from helpdesk.models.directory import TargetSystem
from helpdesk.models.user import User, UserPrefs


def test_create_ticket_defaults(client, org):
    login(client, "alice")
    body = create_ticket(client, target_system_id=9999)

    assert set(body) == {"id", "ticketNumber", "subject", "description", "priority", "status", "createdAt"}
    assert re.fullmatch(r"TKT-[0-9A-Z]+-[0-9A-Z]{5}", body["ticketNumber"])
    assert body["status"] == "open"
    assert body["priority"] == "high"

    detail = client.get(f"/api/tickets/{body['id']}").json()
    assert detail["department"] == {"id": org.it_id, "name": "IT"}
    assert detail["company"] == {"id": org.company_id, "name": "Acme"}
    assert detail["targetSystem"] == {"id": org.email_sys, "name": "Email"}
    assert detail["createdBy"]["id"] == "alice"
    assert detail["assignedTo"] is None


def test_create_ticket_keeps_valid_target_system(client, org):
    login(client, "alice")
    t = create_ticket(client, target_system_id=org.vpn_sys)
    assert client.get(f"/api/tickets/{t['id']}").json()["targetSystem"]["id"] == org.vpn_sys

    # a system from another department is replaced by the department's first one
    t = create_ticket(client, target_system_id=org.payroll_sys)
    assert client.get(f"/api/tickets/{t['id']}").json()["targetSystem"]["id"] == org.email_sys


def test_create_ticket_creates_general_system(client, org, engine):
    login(client, "labrat")
    r = client.post("/api/tickets", json={"subject": "Scope", "description": "Broken"})
    assert r.status_code == 400

    t = create_ticket(client, company_id=org.company_id, priority="low")
    detail = client.get(f"/api/tickets/{t['id']}").json()
    assert detail["targetSystem"]["name"] == "General"

    with Session(engine) as s:
        systems = s.exec(select(TargetSystem).where(TargetSystem.department_id == org.lab_id)).all()
        assert [x.name for x in systems] == ["General"]


def test_create_ticket_validation(client, org):
    login(client, "alice")
    r = client.post("/api/tickets", json={"subject": "<script>alert(1)</script>", "description": "x"})
    assert r.status_code == 400

    r = client.post("/api/tickets", json={"subject": "Hi", "description": "there", "priority": "urgent"})
    assert r.status_code == 422

    t = create_ticket(client, subject="<b>Printer</b><script>alert(1)</script>", description="<i>jammed</i>")
    assert t["subject"] == "Printer"
    assert t["description"] == "jammed"


def test_create_ticket_queues_emails(client, org, engine, celery, mail_enabled):
    with Session(engine) as s:
        s.add(UserPrefs(user_id="hradmin", notifications=False))
        s.get(User, "alice").first_name = "<Al>"
        s.commit()

    login(client, "alice")
    t = create_ticket(client)

    admin_subjects = {a[0]: a[1] for a in (x for name, x in celery.sent) if a[1].startswith("New Ticket")}
    assert set(admin_subjects) == {"su@acme.test", "itadmin@acme.test"}

    dept = [a for name, a in celery.sent if a[1].startswith("Helpdesk: New Ticket Raised")]
    assert {a[0] for a in dept} == {"itadmin@acme.test", "alice@acme.test", "bob@acme.test"}
    html = dept[0][3]
    assert "&lt;Al&gt;" in html
    assert "<Al>" not in html
    assert t["ticketNumber"] in html
    assert all(name == "send_email" for name, _ in celery.sent)


def test_create_ticket_without_mail_config_queues_nothing(client, org, celery):
    login(client, "alice")
    create_ticket(client)
    assert celery.sent == []


def test_list_is_department_scoped(client, org):
    login(client, "alice")
    it_ticket = create_ticket(client, subject="IT one")
    login(client, "hank")
    hr_ticket = create_ticket(client, subject="HR one")

    login(client, "alice")
    assert [t["id"] for t in client.get("/api/tickets").json()] == [it_ticket["id"]]
    # only super admins may choose the department
    r = client.get("/api/tickets", params={"department_id": org.hr_id})
    assert [t["id"] for t in r.json()] == [it_ticket["id"]]

    login(client, "itadmin")
    assert [t["id"] for t in client.get("/api/tickets").json()] == [it_ticket["id"]]

    login(client, "su")
    assert {t["id"] for t in client.get("/api/tickets").json()} == {it_ticket["id"], hr_ticket["id"]}
    r = client.get("/api/tickets", params={"department_id": org.hr_id})
    assert [t["id"] for t in r.json()] == [hr_ticket["id"]]


def test_list_filters_order_and_paging(client, org):
    login(client, "alice")
    first = create_ticket(client, subject="VPN drops", priority="low")
    second = create_ticket(client, subject="Mail bounce", priority="high")
    client.patch(f"/api/tickets/{first['id']}/status", json={"status": "resolved"})

    items = client.get("/api/tickets").json()
    assert [t["id"] for t in items] == [second["id"], first["id"]]
    assert items[0]["department"]["name"] == "IT"
    assert items[0]["createdBy"]["firstName"] == "Alice"

    assert [t["id"] for t in client.get("/api/tickets", params={"status": "resolved"}).json()] == [first["id"]]
    assert [t["id"] for t in client.get("/api/tickets", params={"priority": "high"}).json()] == [second["id"]]
    assert [t["id"] for t in client.get("/api/tickets", params={"search": "vpn"}).json()] == [first["id"]]
    r = client.get("/api/tickets", params={"search": second["ticketNumber"]})
    assert [t["id"] for t in r.json()] == [second["id"]]

    assert len(client.get("/api/tickets", params={"limit": 0}).json()) == 1
    assert len(client.get("/api/tickets", params={"limit": 1000}).json()) == 2
    r = client.get("/api/tickets", params={"limit": 1, "offset": 1})
    assert [t["id"] for t in r.json()] == [first["id"]]
    assert len(client.get("/api/tickets", params={"offset": -5}).json()) == 2


def test_ticket_detail_visibility(client, org):
    login(client, "hank")
    # filed into another department, still visible to its creator
    own = create_ticket(client, department_id=org.it_id)
    assert client.get(f"/api/tickets/{own['id']}").status_code == 200

    login(client, "alice")
    it_ticket = create_ticket(client)
    assert client.get("/api/tickets/9999").status_code == 404

    login(client, "hank")
    assert client.get(f"/api/tickets/{it_ticket['id']}").status_code == 403

    login(client, "hradmin")
    detail = client.get(f"/api/tickets/{it_ticket['id']}").json()
    assert detail["attachments"] == []
    assert detail["resolvedAt"] is None


def test_status_update_rules(client, org):
    login(client, "alice")
    t = create_ticket(client)

    login(client, "hank")
    assert client.patch(f"/api/tickets/{t['id']}/status", json={"status": "in_progress"}).status_code == 403

    login(client, "bob")
    r = client.patch(f"/api/tickets/{t['id']}/status", json={"status": "in_progress"})
    assert r.status_code == 200
    assert r.json()["status"] == "in_progress"

    assert client.patch(f"/api/tickets/{t['id']}/status", json={"status": "bogus"}).status_code == 422

    login(client, "itadmin")
    assert client.patch(f"/api/tickets/{t['id']}/assign", json={"assigned_to": "bob"}).status_code == 200

    login(client, "alice")
    assert client.patch(f"/api/tickets/{t['id']}/status", json={"status": "resolved"}).status_code == 403

    login(client, "bob")
    assert client.patch(f"/api/tickets/{t['id']}/status", json={"status": "resolved"}).status_code == 200
    detail = client.get(f"/api/tickets/{t['id']}").json()
    assert detail["resolvedAt"] is not None
    assert detail["closedAt"] is None

    login(client, "hradmin")
    assert client.patch(f"/api/tickets/{t['id']}/status", json={"status": "closed"}).status_code == 200
    assert client.get(f"/api/tickets/{t['id']}").json()["closedAt"] is not None


def test_assign_ticket(client, org):
    login(client, "alice")
    t = create_ticket(client)
    assert client.patch(f"/api/tickets/{t['id']}/assign", json={"assigned_to": "bob"}).status_code == 403

    login(client, "itadmin")
    assert client.patch("/api/tickets/9999/assign", json={"assigned_to": "bob"}).status_code == 404
    assert client.patch(f"/api/tickets/{t['id']}/assign", json={"assigned_to": "ghost"}).status_code == 400

    r = client.patch(f"/api/tickets/{t['id']}/assign", json={"assigned_to": "bob"})
    assert r.status_code == 200
    assert r.json()["assignedTo"] == "bob"
    assert r.json()["status"] == "open"

    client.patch(f"/api/tickets/{t['id']}/status", json={"status": "closed"})
    r = client.patch(f"/api/tickets/{t['id']}/assign", json={"assigned_to": "alice"})
    assert r.json()["status"] == "in_progress"
    assert client.get(f"/api/tickets/{t['id']}").json()["assignedTo"]["id"] == "alice"


def test_accept_ticket(client, org):
    login(client, "alice")
    t = create_ticket(client)

    login(client, "hank")
    assert client.post(f"/api/tickets/{t['id']}/accept").status_code == 403

    login(client, "bob")
    r = client.post(f"/api/tickets/{t['id']}/accept")
    assert r.status_code == 200
    assert r.json()["assignedTo"] == "bob"

    login(client, "alice")
    r = client.post(f"/api/tickets/{t['id']}/accept")
    assert r.status_code == 409
    assert r.json()["detail"] == "Ticket already accepted"


def test_department_users(client, org):
    login(client, "alice")
    t = create_ticket(client)
    assert client.get(f"/api/tickets/{t['id']}/department-users").status_code == 403

    login(client, "itadmin")
    ids = {u["id"] for u in client.get(f"/api/tickets/{t['id']}/department-users").json()}
    assert ids == {"itadmin", "alice", "bob"}


def test_stats(client, org):
    login(client, "alice")
    a = create_ticket(client)
    create_ticket(client)
    client.patch(f"/api/tickets/{a['id']}/status", json={"status": "resolved"})
    login(client, "hank")
    create_ticket(client)

    login(client, "alice")
    assert client.get("/api/stats").json() == {"total": 2, "open": 1, "in_progress": 0, "resolved": 1, "closed": 0}

    login(client, "su")
    assert client.get("/api/stats").json()["total"] == 3
    assert client.get("/api/stats", params={"department_id": org.hr_id}).json()["total"] == 1


def test_ampersand_is_stored_and_searchable(client, org):
    login(client, "alice")
    t = create_ticket(client, subject="R&D VPN <b>down</b>")
    assert t["subject"] == "R&D VPN down"

    r = client.get("/api/tickets", params={"search": "R&D"})
    assert [x["id"] for x in r.json()] == [t["id"]]


def test_status_and_assignment_reach_the_hub(client, org, hub):
    login(client, "alice")
    t = create_ticket(client)

    room = hub("su", ticket_id=t["id"])
    creator = hub("alice")
    assignee = hub("bob")
    elsewhere = hub("hank", ticket_id=t["id"] + 1)

    login(client, "itadmin")
    client.patch(f"/api/tickets/{t['id']}/status", json={"status": "in_progress"})
    assert room.types == ["ticket_update"]
    assert room.frames[0]["ticketId"] == t["id"]
    assert room.frames[0]["update"] == {"status": "in_progress"}
    assert creator.types == ["notification"]
    assert creator.frames[0]["notification"]["type"] == "ticket_status"
    assert creator.frames[0]["notification"]["status"] == "in_progress"

    client.patch(f"/api/tickets/{t['id']}/assign", json={"assigned_to": "bob"})
    assert room.frames[-1]["update"] == {"assigned_to": "bob", "status": "in_progress"}
    assert assignee.types == ["notification"]
    assert assignee.frames[0]["notification"]["type"] == "ticket_assigned"
    assert assignee.frames[0]["notification"]["ticketNumber"] == t["ticketNumber"]

    assert elsewhere.frames == []


def test_creator_changing_status_gets_no_notification(client, org, hub):
    login(client, "alice")
    t = create_ticket(client)
    creator = hub("alice")

    client.patch(f"/api/tickets/{t['id']}/status", json={"status": "resolved"})
    assert creator.frames == []
