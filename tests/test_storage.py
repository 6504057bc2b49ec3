from datetime import timedelta

import pytest

from formcraft.protocols import StorageError
from formcraft.repo_json import JSONStorage
from formcraft.repo_sqlite import SQLiteStorage
from formcraft.utils import new_ulid, now_utc


@pytest.fixture(params=["sqlite", "json"])
def storage(request, tmp_path):
    if request.param == "sqlite":
        store = SQLiteStorage(f"sqlite:///{tmp_path / 'test.db'}")
    else:
        store = JSONStorage(tmp_path / "test.json")
    yield store
    store.close()


def make_user(storage, username="alice", role="admin"):
    return storage.users.create_user(
        {
            "id": new_ulid(),
            "username": username,
            "email": f"{username}@example.com",
            "password_hash": "hash",
            "role": role,
            "created_at": now_utc(),
        }
    )


def make_form(storage, user_id, name="Survey", description=""):
    now = now_utc()
    return storage.forms.create_form(
        {
            "id": new_ulid(),
            "name": name,
            "description": description,
            "schema_json": {"fields": [{"id": "q", "type": "textInput"}]},
            "user_id": user_id,
            "status": "draft",
            "published_url": None,
            "created_at": now,
            "updated_at": now,
        }
    )


def make_submission(storage, form_id, offset=0):
    return storage.submissions.create_submission(
        {
            "id": new_ulid(),
            "form_id": form_id,
            "data_json": {"q": "answer"},
            "created_at": now_utc() + timedelta(seconds=offset),
        }
    )


def make_file(storage, submission_id):
    return storage.files.create_file_upload(
        {
            "id": new_ulid(),
            "submission_id": submission_id,
            "field_id": "f",
            "file_name": "a.png",
            "file_type": "image/png",
            "file_path": "/tmp/a.png",
            "file_size": 3,
            "created_at": now_utc(),
        }
    )


def test_users(storage):
    user = make_user(storage)
    assert storage.users.get_user(user["id"])["username"] == "alice"
    assert storage.users.get_user_by_username("alice")["id"] == user["id"]
    assert storage.users.get_user_by_email("alice@example.com")["id"] == user["id"]
    assert storage.users.count_users() == 1
    make_user(storage, "bob")
    assert [u["username"] for u in storage.users.list_users()] == ["alice", "bob"]
    assert storage.users.delete_user(user["id"]) is True
    assert storage.users.delete_user(user["id"]) is False
    assert storage.users.count_users() == 1


def test_duplicate_user_raises(storage):
    make_user(storage)
    with pytest.raises(StorageError):
        make_user(storage)


def test_lookups_return_none(storage):
    assert storage.users.get_user("missing") is None
    assert storage.users.get_user_by_username("missing") is None
    assert storage.forms.get_form("missing") is None
    assert storage.forms.update_form("missing", {"name": "x"}) is None
    assert storage.forms.publish_form("missing") is None
    assert storage.forms.delete_form("missing") is False
    assert storage.submissions.get_submission("missing") is None
    assert storage.submissions.delete_submission("missing") is False
    assert storage.files.get_file_upload("missing") is None
    assert storage.files.list_file_uploads_by_submission("missing") == []


def test_form_crud(storage):
    user = make_user(storage)
    form = make_form(storage, user["id"])
    fetched = storage.forms.get_form(form["id"])
    assert fetched["schema_json"] == {"fields": [{"id": "q", "type": "textInput"}]}
    assert fetched["created_at"].tzinfo is not None

    updated = storage.forms.update_form(form["id"], {"name": "Renamed", "id": "ignored"})
    assert updated["id"] == form["id"]
    assert updated["name"] == "Renamed"
    assert updated["updated_at"] >= form["updated_at"]


def test_publish_is_idempotent(storage):
    user = make_user(storage)
    form = make_form(storage, user["id"])
    first = storage.forms.publish_form(form["id"])
    second = storage.forms.publish_form(form["id"])
    assert first["status"] == second["status"] == "published"
    assert first["published_url"] == second["published_url"] == f"/public-form/{form['id']}"


def test_listing_and_search(storage):
    alice = make_user(storage)
    bob = make_user(storage, "bob")
    make_form(storage, alice["id"], "Customer survey")
    make_form(storage, bob["id"], "Signup", "Join the SURVEY panel")
    make_form(storage, bob["id"], "Feedback")
    assert len(storage.forms.list_all_forms()) == 3
    assert [f["name"] for f in storage.forms.list_forms_by_owner(alice["id"])] == ["Customer survey"]
    assert {f["name"] for f in storage.forms.search_forms("survey")} == {"Customer survey", "Signup"}
    assert storage.forms.search_forms("nothing") == []


def test_submissions_newest_first(storage):
    user = make_user(storage)
    form = make_form(storage, user["id"])
    older = make_submission(storage, form["id"])
    newer = make_submission(storage, form["id"], offset=5)
    listed = storage.submissions.list_submissions_by_form(form["id"])
    assert [s["id"] for s in listed] == [newer["id"], older["id"]]
    assert listed[0]["data_json"] == {"q": "answer"}


def test_delete_submission_cascades_files(storage):
    user = make_user(storage)
    form = make_form(storage, user["id"])
    submission = make_submission(storage, form["id"])
    file_meta = make_file(storage, submission["id"])
    assert storage.files.get_file_upload(file_meta["id"])["file_name"] == "a.png"
    assert storage.submissions.delete_submission(submission["id"]) is True
    assert storage.files.get_file_upload(file_meta["id"]) is None


def test_delete_form_cascades(storage):
    user = make_user(storage)
    form = make_form(storage, user["id"])
    other = make_form(storage, user["id"], "Other")
    submission = make_submission(storage, form["id"])
    kept = make_submission(storage, other["id"])
    file_meta = make_file(storage, submission["id"])
    kept_file = make_file(storage, kept["id"])

    assert storage.forms.delete_form(form["id"]) is True
    assert storage.forms.get_form(form["id"]) is None
    assert storage.submissions.get_submission(submission["id"]) is None
    assert storage.files.get_file_upload(file_meta["id"]) is None
    assert storage.submissions.get_submission(kept["id"]) is not None
    assert storage.files.get_file_upload(kept_file["id"]) is not None


def test_deleting_user_keeps_forms(storage):
    user = make_user(storage)
    form = make_form(storage, user["id"])
    storage.users.delete_user(user["id"])
    assert storage.forms.get_form(form["id"]) is not None


def test_search_treats_wildcards_literally(storage):
    user = make_user(storage)
    make_form(storage, user["id"], "abc")
    make_form(storage, user["id"], "100% done")
    make_form(storage, user["id"], "snake_case")
    assert storage.forms.search_forms("a_c") == []
    assert [f["name"] for f in storage.forms.search_forms("%")] == ["100% done"]
    assert [f["name"] for f in storage.forms.search_forms("E_C")] == ["snake_case"]
