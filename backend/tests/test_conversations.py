from conftest import login


def test_team_user_search(client, org):
    login(client, "alice")
    ids = {u["id"] for u in client.get("/api/messages/users").json()}
    assert ids == {"itadmin", "bob"}

    assert [u["id"] for u in client.get("/api/messages/users", params={"q": "STONE"}).json()] == ["bob"]
    assert [u["id"] for u in client.get("/api/messages/users", params={"q": "bob stone"}).json()] == ["bob"]
    assert [u["id"] for u in client.get("/api/messages/users", params={"q": "itadmin@"}).json()] == ["itadmin"]

    # department_id is honoured for super admins only
    assert {u["id"] for u in client.get("/api/messages/users", params={"department_id": org.hr_id}).json()} == {
        "itadmin",
        "bob",
    }
    login(client, "su")
    ids = {u["id"] for u in client.get("/api/messages/users", params={"department_id": org.hr_id}).json()}
    assert ids == {"hradmin", "hank"}


def test_email_suggestions(client, org):
    login(client, "alice")
    emails = [r["email"] for r in client.get("/api/users/emails", params={"q": "acme"}).json()]
    assert "alice@acme.test" not in emails
    assert "hank@acme.test" in emails

    r = client.get("/api/users/emails", params={"q": "ruiz"}).json()
    assert r == [{"email": "hank@acme.test", "name": "Hank Ruiz"}]


def test_conversation_lifecycle(client, org):
    login(client, "alice")
    assert client.post("/api/messages/conversations", json={}).status_code == 400
    assert client.post("/api/messages/conversations", json={"userId": "alice"}).status_code == 400
    assert client.post("/api/messages/conversations", json={"userId": "ghost"}).status_code == 404

    r = client.post("/api/messages/conversations", json={"userId": "bob"})
    assert r.status_code == 201
    conv = r.json()
    assert conv["otherUser"]["id"] == "bob"

    login(client, "bob")
    # the ordered pair is the key, whoever starts it
    r = client.post("/api/messages/conversations", json={"userId": "alice"})
    assert r.status_code == 200
    assert r.json()["id"] == conv["id"]

    r = client.post(f"/api/messages/conversations/{conv['id']}", json={"message": "<i>lunch?</i>"})
    assert r.status_code == 201
    assert r.json()["message"] == "lunch?"
    assert client.post(f"/api/messages/conversations/{conv['id']}", json={"message": "  "}).status_code == 400

    login(client, "alice")
    client.post(f"/api/messages/conversations/{conv['id']}", json={"message": "sure"})
    msgs = client.get(f"/api/messages/conversations/{conv['id']}").json()
    assert [(m["senderId"], m["message"]) for m in msgs] == [("bob", "lunch?"), ("alice", "sure")]

    listed = client.get("/api/messages/conversations").json()
    assert listed[0]["id"] == conv["id"]
    assert listed[0]["lastMessage"] == "sure"

    login(client, "hank")
    assert client.get(f"/api/messages/conversations/{conv['id']}").status_code == 403
    assert client.post(f"/api/messages/conversations/{conv['id']}", json={"message": "hi"}).status_code == 403
    assert client.get("/api/messages/conversations").json() == []


def test_conversations_sorted_by_activity(client, org):
    login(client, "alice")
    with_bob = client.post("/api/messages/conversations", json={"userId": "bob"}).json()
    with_hank = client.post("/api/messages/conversations", json={"userId": "hank"}).json()
    client.post(f"/api/messages/conversations/{with_bob['id']}", json={"message": "first"})
    client.post(f"/api/messages/conversations/{with_hank['id']}", json={"message": "second"})
    silent = client.post("/api/messages/conversations", json={"userId": "itadmin"}).json()

    order = [c["id"] for c in client.get("/api/messages/conversations").json()]
    assert order == [with_hank["id"], with_bob["id"], silent["id"]]


def test_direct_message_reaches_other_participant(client, org, hub):
    login(client, "alice")
    conv = client.post("/api/messages/conversations", json={"userId": "bob"}).json()
    bob = hub("bob")
    alice = hub("alice")

    client.post(f"/api/messages/conversations/{conv['id']}", json={"message": "coffee?"})

    assert bob.types == ["notification"]
    note = bob.frames[0]["notification"]
    assert note["type"] == "direct_message"
    assert note["conversationId"] == conv["id"]
    assert note["from"]["id"] == "alice"
    assert note["message"]["message"] == "coffee?"
    assert alice.frames == []
