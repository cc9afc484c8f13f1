"""
Tests for client intake and the outbound collaborators: asset store,
core banking system client/push and the geo WPS submission.

HTTP collaborators are exercised against a mocked requests.Session.
"""
import re
from unittest.mock import MagicMock

import pytest
import requests

from origination.errors import (
    CBSRequestError, DuplicateClientError, GeoServiceError, NotFoundError,
    UploadError, ValidationError,
)
from origination.models.db_models import CBSStatus, ClientDB, ClientStatus
from origination.models.dto import AssetFile, ClientIntake
from origination.services.clients import CBSService, ClientService, validate_intake
from origination.services.integrations import (
    CBSClient, CBSCredentials, GeoValidationService, LocalAssetStore, asset_name,
)


def mock_session(*payloads):
    """requests.Session whose successive POSTs answer with `payloads`."""
    session = MagicMock(spec=requests.Session)
    responses = []
    for payload in payloads:
        response = MagicMock()
        response.json.return_value = payload
        responses.append(response)
    session.post.side_effect = responses
    return session


CREDENTIALS = CBSCredentials(url="https://cbs.test/api/", username="teller", password="secret", device_id="dev-1")


# =============================================================================
# TEST: ASSET STORE
# =============================================================================

class TestAssetStore:

    def test_asset_name_format(self):
        name = asset_name("Abebe Kebede", "ID Card.JPG")
        assert re.fullmatch(r"ABEBE_KEBEDE_[0-9a-f]{12}\.jpg", name)

    def test_asset_names_are_unique(self):
        assert asset_name("Abebe", "a.png") != asset_name("Abebe", "a.png")

    def test_store_and_remove(self, asset_store):
        url = asset_store.store(AssetFile(filename="card.png", content=b"\x89PNG"), "Abebe")

        assert url.startswith("http://testserver/media/ABEBE_")
        path = asset_store.path_for(url)
        assert path.read_bytes() == b"\x89PNG"

        asset_store.remove(url)
        assert not path.exists()
        # second removal is a no-op
        asset_store.remove(url)

    def test_empty_file_rejected(self, asset_store):
        with pytest.raises(UploadError):
            asset_store.store(AssetFile(filename="card.png", content=b""), "Abebe")

    def test_size_limit(self, tmp_path):
        store = LocalAssetStore(root=tmp_path, base_url="http://testserver/media/", max_size=4)

        with pytest.raises(UploadError) as exc_info:
            store.store(AssetFile(filename="card.png", content=b"12345"), "Abebe")

        assert exc_info.value.status_code == 502
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.parametrize("first_name", ["../../escaped", "..\\..\\escaped", "/etc/passwd", "a/../../b"])
    def test_first_name_cannot_leave_asset_folder(self, asset_store, first_name):
        url = asset_store.store(AssetFile(filename="id.jpg", content=b"x"), first_name)

        name = url.rsplit("/", 1)[-1]
        assert url == f"http://testserver/media/{name}"
        assert re.fullmatch(r"[A-Z0-9_]+_[0-9a-f]{12}\.jpg", name)
        assert [p.name for p in asset_store.root.iterdir()] == [name]

    def test_filename_path_is_ignored(self):
        name = asset_name("Abebe", "../../shell.d/evil.PHP")
        assert re.fullmatch(r"ABEBE_[0-9a-f]{12}\.php", name)

    def test_name_without_usable_characters(self):
        assert asset_name("../", "a.png").startswith("CLIENT_")

    def test_url_outside_asset_folder_rejected(self, asset_store):
        with pytest.raises(UploadError):
            asset_store.remove("http://testserver/media/..")


# =============================================================================
# TEST: CLIENT INTAKE
# =============================================================================

class TestClientIntake:

    def test_empty_intake_reports_every_field(self):
        assert validate_intake(ClientIntake()) == [
            "Client First Name is Empty",
            "Client Last Name is Empty",
            "Client Grandfather name is Empty",
            "Client Gender is Empty",
            "Client National Id No is Empty",
            "Client Related Branch is Empty",
            "Client Created By is Empty",
            "Client Civil Status is Empty",
            "Client household_members_count is Empty",
        ]

    def test_married_client_needs_spouse(self, make_intake):
        assert validate_intake(make_intake(civil_status="married")) == ["Client Spouse Info is Empty!!"]
        assert validate_intake(make_intake(civil_status="married", spouse={"name": "Almaz"})) == []

    def test_create_client(self, db, make_intake, officer, asset_store):
        intake = make_intake(picture=AssetFile(filename="face.jpg", content=b"jpeg"))
        stored = []

        client = ClientService(db, asset_store).create(intake, officer, stored)

        assert client.status == ClientStatus.NEW
        assert client.cbs_status == CBSStatus.NO_ATTEMPT
        assert client.picture == stored[0]
        assert client.national_id_card is None

    def test_create_rejects_invalid_intake(self, db, officer, asset_store):
        with pytest.raises(ValidationError) as exc_info:
            ClientService(db, asset_store).create(ClientIntake(first_name="Abebe"), officer, [])

        assert "Client Last Name is Empty" in exc_info.value.errors
        assert db.query(ClientDB).count() == 0

    def test_duplicate_phone(self, db, make_intake, officer, asset_store):
        service = ClientService(db, asset_store)
        service.create(make_intake(), officer, [])
        db.commit()

        with pytest.raises(DuplicateClientError) as exc_info:
            service.create(make_intake(national_id_no="ID-0002"), officer, [])
        assert exc_info.value.message == "Client with those details already exists!!"

    def test_failed_screening_removes_uploaded_assets(self, db, screening_service, make_intake, officer, asset_store):
        # no SCREENING template exists, so creation fails after the upload
        intake = make_intake(picture=AssetFile(filename="face.jpg", content=b"jpeg"))

        with pytest.raises(NotFoundError):
            screening_service.create_client_screening(intake, officer)

        assert not asset_store.root.exists() or list(asset_store.root.iterdir()) == []
        assert db.query(ClientDB).count() == 0


# =============================================================================
# TEST: CBS CLIENT
# =============================================================================

class TestCBSClient:

    def test_login_then_token_header(self):
        session = mock_session(
            {"userID": 7, "token": "tok-123", "terminalId": "T1"},
            {"customerID": "C-900"},
        )
        cbs = CBSClient(CREDENTIALS, session=session, timeout=5)

        cbs.login()
        ref = cbs.create_client({"name": "Kebede, Abebe"})

        assert ref == "C-900"
        login_call, customer_call = session.post.call_args_list
        assert login_call.args[0] == "https://cbs.test/api/login"
        assert login_call.kwargs["json"] == {"username": "teller", "password": "secret", "DeviceID": "dev-1"}
        assert "X-Fern-Token" not in login_call.kwargs["headers"]
        assert customer_call.args[0] == "https://cbs.test/api/customer"
        assert customer_call.kwargs["headers"] == {"X-Fern-Token": "tok-123"}

    def test_login_without_token(self):
        cbs = CBSClient(CREDENTIALS, session=mock_session({"message": "bad credentials"}))

        with pytest.raises(CBSRequestError):
            cbs.login()

    def test_calls_before_login_rejected(self):
        session = mock_session()
        with pytest.raises(CBSRequestError):
            CBSClient(CREDENTIALS, session=session).create_client({})
        session.post.assert_not_called()

    def test_transport_failure(self):
        session = MagicMock(spec=requests.Session)
        session.post.side_effect = requests.ConnectionError("connection refused")

        with pytest.raises(CBSRequestError) as exc_info:
            CBSClient(CREDENTIALS, session=session).login()
        assert "/login" in exc_info.value.message

    def test_picture_upload_is_base64(self, tmp_path):
        picture = tmp_path / "face.jpg"
        picture.write_bytes(b"jpeg")
        session = mock_session({"token": "tok"}, {"pictureId": 42})
        cbs = CBSClient(CREDENTIALS, session=session)

        cbs.login()
        assert cbs.upload_picture(picture) == "42"
        assert session.post.call_args.kwargs["json"] == {"image": "anBlZw=="}


# =============================================================================
# TEST: CBS PUSH
# =============================================================================

class TestCBSPush:

    @pytest.fixture
    def eligible_client(self, db, make_intake, officer, asset_store):
        client = ClientService(db, asset_store).create(make_intake(), officer, [])
        client.status = ClientStatus.ELIGIBLE
        db.commit()
        return client

    def test_accepted(self, db, eligible_client, asset_store):
        session = mock_session({"token": "tok"}, {"customerID": "C-1"})
        service = CBSService(db, assets=asset_store, session=session)
        service.update_config({"url": "https://cbs.test/api", "username": "teller", "password": "secret"})

        service.push_client(eligible_client)

        db.expire_all()
        assert eligible_client.cbs_status == CBSStatus.ACCEPTED
        assert eligible_client.cbs_ref == "C-1"
        payload = session.post.call_args.kwargs["json"]
        assert payload["name"] == "Kebede, Abebe"
        assert payload["persons"][0]["gender"] == 0

    def test_denied_is_recorded(self, db, eligible_client, asset_store):
        session = MagicMock(spec=requests.Session)
        session.post.side_effect = requests.Timeout("timed out")

        with pytest.raises(CBSRequestError):
            CBSService(db, assets=asset_store, session=session).push_client(eligible_client)

        db.expire_all()
        assert eligible_client.cbs_status == CBSStatus.DENIED
        assert "timed out" in eligible_client.cbs_message

    def test_ineligible_client_not_pushed(self, db, make_intake, officer, asset_store):
        client = ClientService(db, asset_store).create(make_intake(), officer, [])
        session = mock_session()

        with pytest.raises(ValidationError):
            CBSService(db, assets=asset_store, session=session).push_client(client)
        session.post.assert_not_called()

    def test_config_row_wins_over_environment(self, db):
        service = CBSService(db)
        service.update_config({"url": "https://other.test", "username": "u", "password": "p"})

        assert service.credentials().url == "https://other.test"

        service.update_config({"username": "u2"})
        assert service.credentials().url == "https://other.test"
        assert service.credentials().username == "u2"


# =============================================================================
# TEST: GEO VALIDATION
# =============================================================================

PARCEL = [[38.85, 8.08], [38.86, 8.08], [38.86, 8.09]]


class TestGeoValidation:

    def test_disabled_without_url(self):
        session = mock_session()
        assert GeoValidationService(url="", session=session).submit_parcel(PARCEL, tag="c1") is None
        session.post.assert_not_called()

    def test_empty_polygon_skipped(self):
        session = mock_session()
        assert GeoValidationService(url="http://geo.test/wps", session=session).submit_parcel([], tag="c1") is None

    def test_degenerate_polygon_rejected(self):
        with pytest.raises(ValidationError):
            GeoValidationService(url="http://geo.test/wps", session=mock_session()).submit_parcel(PARCEL[:2], tag="c1")

    def test_altitude_is_dropped(self):
        session = mock_session({"area_ha": 1.2})
        geo = GeoValidationService(url="http://geo.test/wps", session=session)

        geo.submit_parcel([[38.85, 8.08, 2100.0], [38.86, 8.08, 2101.0], [38.86, 8.09, 2099.5]], tag="c1")

        assert session.post.call_args.kwargs["json"]["polygon"] == PARCEL

    def test_malformed_points_rejected(self):
        session = mock_session()
        polygon = [[38.85, 8.08], [38.86], [38.86, "north"], "38.8,8.1"]

        with pytest.raises(ValidationError) as exc_info:
            GeoValidationService(url="http://geo.test/wps", session=session).submit_parcel(polygon, tag="c1")

        assert [e.split(" is ")[0] for e in exc_info.value.errors] == [
            "Parcel point 2", "Parcel point 3", "Parcel point 4",
        ]
        session.post.assert_not_called()

    def test_intake_with_malformed_polygon(self, db, make_intake, officer, asset_store):
        with pytest.raises(ValidationError):
            ClientService(db, asset_store).create(make_intake(geolocation=[[38.85, 8.08], [None]]), officer, [])
        assert db.query(ClientDB).count() == 0

    def test_submission_payload(self):
        session = mock_session({"area_ha": 1.2})
        geo = GeoValidationService(url="http://geo.test/wps", session=session, timeout=3)

        assert geo.submit_parcel(PARCEL, tag="client-1") == {"area_ha": 1.2}
        session.post.assert_called_once_with(
            "http://geo.test/wps",
            json={"tag": "client-1", "polygon": PARCEL},
            timeout=3,
        )

    def test_transport_failure(self):
        session = MagicMock(spec=requests.Session)
        session.post.side_effect = requests.ConnectionError("down")

        with pytest.raises(GeoServiceError):
            GeoValidationService(url="http://geo.test/wps", session=session).submit_parcel(PARCEL, tag="c1")
