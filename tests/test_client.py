import pytest

from formcraft.builder import FormBuilder
from formcraft.client import ApiError, FormCraftClient, Session


@pytest.fixture
def api(client):
    return FormCraftClient(http=client)


def test_register_stores_session(api):
    session = api.register("alice", "alice@example.com", "secret123")
    assert isinstance(session, Session)
    assert api.session is session
    assert not session.is_super_admin
    assert api.me()["username"] == "alice"


def test_errors_raise_api_error(api):
    with pytest.raises(ApiError) as excinfo:
        api.me()
    assert excinfo.value.status_code == 401

    with pytest.raises(ApiError) as excinfo:
        api.login("alice", "wrong")
    assert excinfo.value.status_code == 400
    assert excinfo.value.detail == "Invalid username or password"


def test_session_is_explicit(api, client):
    session = api.register("alice", "alice@example.com", "secret123")
    other = FormCraftClient(http=client)
    with pytest.raises(ApiError):
        other.me()
    other.session = session
    assert other.me()["username"] == "alice"
    other.logout()
    assert other.session is None


def test_builder_save_and_publish(api):
    api.register("alice", "alice@example.com", "secret123")
    builder = FormBuilder()
    builder.set_name("Signup")
    builder.add_field("textInput")
    builder.update_field_properties(builder.fields[0]["id"], {"label": "Name", "required": True})
    builder.add_field("bannerUpload")
    builder.add_field("bannerUpload")

    created = api.save_draft(builder)
    assert builder.draft.id == created["id"]
    assert len(created["schema"]["fields"]) == 2

    builder.move_field_down(0)
    updated = api.save_draft(builder)
    assert updated["id"] == created["id"]
    assert [f["type"] for f in updated["schema"]["fields"]] == ["bannerUpload", "textInput"]

    published = api.publish_draft(builder)
    assert builder.draft.status == "published"
    assert builder.draft.published_url == f"/public-form/{created['id']}"
    assert api.get_public_form(created["id"])["name"] == "Signup"
    assert [f["id"] for f in api.list_forms()] == [published["id"]]


def test_load_round_trip(api):
    api.register("alice", "alice@example.com", "secret123")
    builder = FormBuilder()
    builder.set_name("Poll")
    builder.add_field("radio")
    builder.add_field("toggle")
    form = api.save_draft(builder)

    reloaded = FormBuilder()
    reloaded.load(api.get_form(form["id"]))
    assert reloaded.fields == builder.fields
    assert reloaded.draft.id == form["id"]


def test_submit_and_read_back(api):
    api.register("alice", "alice@example.com", "secret123")
    builder = FormBuilder()
    builder.set_name("Upload")
    builder.add_field("textInput")
    builder.add_field("fileUpload")
    text_id, file_id = (f["id"] for f in builder.fields)
    form = api.publish_draft(builder)

    submission = api.submit(
        form["id"], {text_id: "hello"}, files={file_id: ("a.pdf", b"%PDF-1.4", "application/pdf")}
    )
    assert submission["data"][text_id] == "hello"
    [stored] = submission["files"]
    assert api.download_file(stored["id"]) == b"%PDF-1.4"

    plain = api.submit(form["id"], {text_id: "again"})
    assert plain["files"] == []

    listed = api.list_submissions(form["id"], query="again")
    assert [s["id"] for s in listed] == [plain["id"]]
    assert "hello" in api.export_submissions(form["id"])

    api.delete_submission(submission["id"])
    with pytest.raises(ApiError) as excinfo:
        api.get_submission(submission["id"])
    assert excinfo.value.status_code == 404


def test_user_admin(api):
    api.login("admin", "admin123")
    assert api.session.is_super_admin
    created = api.create_admin("zoe", "zoe@example.com", "secret123")
    assert {u["username"] for u in api.list_users()} == {"admin", "zoe"}
    api.delete_user(created["id"])
    assert {u["username"] for u in api.list_users()} == {"admin"}
