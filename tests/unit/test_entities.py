"""
Unit tests for entity models and services other than Users.

Tests cover:
- Label search filters
- Email address standardization and participants
- Device refresh and re-creation
- User-Agent parsing and daily device counts
- Metric validation and statistics
- Event defaults
- Image metadata standardization
"""

import tempfile

import pytest

from service.versionary_server import tuid
from service.versionary_server.entities.base import ValidationProblems, date_range_ids
from service.versionary_server.entities.device import Device, DeviceService, UserAgent, new_device_table
from service.versionary_server.entities.device_count import (
    DeviceCount,
    DeviceCountService,
    new_device_count_table,
)
from service.versionary_server.entities.email import (
    Email,
    EmailService,
    Identity,
    new_email_table,
    standardize_address,
)
from service.versionary_server.entities.event import Event, EventService, new_event_table
from service.versionary_server.entities.image import Image, ImageService, new_image_table
from service.versionary_server.entities.metric import (
    ROW_ENTITY,
    ROW_TAG,
    Metric,
    MetricService,
    MetricStat,
    new_metric_table,
)
from service.versionary_server.entities.search import ContainsFilter
from service.versionary_server.store.table import NotFoundError

GOOGLEBOT = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


class TestContainsFilter:
    """Tests for label search."""

    def test_all_terms_required(self):
        match = ContainsFilter("alice smith")
        assert match("Alice Smith <alice@example.com>")
        assert not match("Alice Jones")

    def test_any_term(self):
        match = ContainsFilter("alice smith", any_match=True)
        assert match("Alice Jones")
        assert match("Bob Smith")
        assert not match("Bob Jones")

    def test_empty_search_rejected(self):
        with pytest.raises(ValueError):
            ContainsFilter("   ")


class TestEmail:
    """Tests for Email addresses and the EmailService."""

    def test_standardize_address(self):
        assert standardize_address("  Bob@Example.COM ") == "bob@example.com"
        with pytest.raises(ValueError, match="missing"):
            standardize_address(" ")
        with pytest.raises(ValueError, match="invalid email address"):
            standardize_address("not an address")

    def test_participants(self):
        email = Email(
            from_=Identity(address="a@example.com"),
            to=[Identity(address="b@example.com")],
            cc=[Identity(address="c@example.com")],
            bcc=[Identity(address="b@example.com")],
        )
        assert email.addresses() == ["a@example.com", "b@example.com", "c@example.com"]
        assert email.is_participant("C@example.com")
        assert not email.is_participant("d@example.com")
        assert not email.is_participant("")

    @pytest.mark.asyncio
    async def test_create_indexes_participants(self, data_dir):
        """Every participant can list the email; addresses are lower-cased."""
        service = EmailService(new_email_table(data_dir, wal_mode=False))
        email = await service.create(
            Email(
                from_=Identity(name="Ada", address="Ada@Example.com"),
                to=[Identity(address="bob@example.com")],
                subject="Hello",
                body_text="Hi Bob",
            )
        )

        assert email.status == "PENDING"
        assert email.from_.address == "ada@example.com"
        assert [e.id for e in await service.read_emails_by_address("ada@example.com")] == [email.id]
        assert [e.id for e in await service.read_emails_by_address("bob@example.com")] == [email.id]
        assert await service.read_all_addresses() == ["ada@example.com", "bob@example.com"]
        assert email.to_dict()["from"] == {"name": "Ada", "address": "ada@example.com"}

    @pytest.mark.asyncio
    async def test_invalid_email(self, data_dir):
        service = EmailService(new_email_table(data_dir, wal_mode=False))
        with pytest.raises(ValidationProblems) as exc_info:
            await service.create(Email(subject="Hello"))
        assert "To recipients are missing" in exc_info.value.problems
        assert "Body is missing" in exc_info.value.problems


class TestDevice:
    """Tests for DeviceService.refresh()."""

    @pytest.fixture
    def service(self, data_dir):
        return DeviceService(new_device_table(data_dir, wal_mode=False))

    @pytest.mark.asyncio
    async def test_create_sets_expiry(self, service):
        device = await service.create(Device(user_agent=UserAgent(header="curl/8.0")))
        assert device.last_seen == device.created_at
        assert device.expires_at.year == device.created_at.year + 1

    @pytest.mark.asyncio
    async def test_refresh_unknown_device_recreates(self, service):
        """A device that has expired (or never existed) gets a new ID."""
        old_id = tuid.new_id()
        result = await service.refresh(Device(id=old_id, user_agent=UserAgent(header="curl/8.0")))
        assert result.created
        assert result.device.id != old_id
        assert await service.exists(result.device.id)

    @pytest.mark.asyncio
    async def test_refresh_same_agent_keeps_version(self, service):
        device = await service.create(Device(user_agent=UserAgent(header="curl/8.0")))
        result = await service.refresh(Device(id=device.id, user_agent=UserAgent(header="curl/8.0")))

        assert not result.created
        assert result.device.version_id == device.version_id
        assert result.device.last_seen >= device.last_seen
        assert len(await service.read_versions(device.id)) == 1

    @pytest.mark.asyncio
    async def test_refresh_new_agent_adds_version(self, service):
        device = await service.create(Device(user_agent=UserAgent(header="curl/8.0")))
        user_id = tuid.new_id()
        result = await service.refresh(
            Device(id=device.id, user_id=user_id, user_agent=UserAgent(header="curl/8.1"))
        )

        assert not result.created
        assert result.device.version_id != device.version_id
        assert result.device.user_id == user_id
        assert [tv.value for tv in await service.read_all_user_agents()] == ["curl/8.1"]
        assert [d.id for d in await service.read_devices_by_user(user_id)] == [device.id]

    @pytest.mark.asyncio
    async def test_count_devices_by_date(self, service):
        """Counting pages through the date index in batches."""
        agents = ["curl/8.0", GOOGLEBOT, GOOGLEBOT]
        devices = [await service.create(Device(user_agent=UserAgent.from_header(a))) for a in agents]
        day = devices[0].last_seen.strftime("%Y-%m-%d")

        count = await service.count_devices_by_date(day, batch_size=2)
        assert count.date == day
        assert count.total == 3
        assert count.client_types["Bot"] == 2
        assert count.device_types["Bot"] == 2
        assert (await service.count_devices_by_date("2001-02-03")).total == 0
        with pytest.raises(ValueError, match="invalid date"):
            await service.count_devices_by_date("yesterday")


class TestUserAgent:
    """Tests for User-Agent parsing."""

    def test_bot(self):
        ua = UserAgent.from_header(GOOGLEBOT)
        assert ua.header == GOOGLEBOT
        assert ua.client_type == "Bot"
        assert ua.client_name == "Googlebot"
        assert ua.device_type == "Bot"

    def test_empty_header(self):
        assert UserAgent.from_header("  ") == UserAgent()
        assert Device(user_agent=UserAgent.from_header("")).validate_entity()[-1] == "UserAgent is missing"

    def test_unparsed_fields_omitted(self):
        """Stored JSON written before parsing existed still decodes."""
        ua = UserAgent.model_validate({"header": "curl/8.0"})
        assert ua.client_name is None
        assert Device(user_agent=ua).to_dict()["userAgent"] == {"header": "curl/8.0"}


class TestDeviceCount:
    """Tests for DeviceCount tallies and storage."""

    def _device(self, header: str) -> Device:
        return Device(user_agent=UserAgent.from_header(header))

    def test_increment_and_merge(self):
        count = DeviceCount(date="2024-05-01").increment(self._device(GOOGLEBOT))
        count = count.increment(self._device(GOOGLEBOT))
        assert count.total == 2
        assert count.client_names == {"Googlebot": 2}

        other = DeviceCount(date="2024-05-02", total=1, os_names={"iOS": 1}, client_names={"Googlebot": 1})
        merged = count.merge(other)
        assert merged.date == "2024-05-01"
        assert merged.total == 3
        assert merged.client_names == {"Googlebot": 3}
        assert merged.os_names == {"iOS": 1}
        assert count.total == 2

    def test_json(self):
        count = DeviceCount(date="2024-05-01", total=1, device_types={"Bot": 1})
        assert count.to_dict() == {"date": "2024-05-01", "total": 1, "deviceTypes": {"Bot": 1}}
        assert DeviceCount.model_validate_json(count.to_json()) == count

    @pytest.mark.asyncio
    async def test_write_and_read(self, data_dir):
        service = DeviceCountService(new_device_count_table(data_dir, wal_mode=False))
        for date in ("2024-05-02", "2024-05-01", "2024-05-03"):
            await service.write(DeviceCount(date=date, total=1))
        await service.write(DeviceCount(date="2024-05-02", total=5))

        assert (await service.read("2024-05-02")).total == 5
        assert await service.exists("2024-05-01")
        page = await service.read_page(reverse=True, limit=2, offset="|")
        assert [c.date for c in page] == ["2024-05-03", "2024-05-02"]
        with pytest.raises(ValidationProblems) as exc_info:
            await service.write(DeviceCount(date="May 1"))
        assert exc_info.value.problems == ["Date is missing or invalid"]


class TestMetric:
    """Tests for Metrics and MetricStats."""

    @pytest.fixture
    def service(self, data_dir):
        return MetricService(new_metric_table(data_dir, wal_mode=False))

    def test_stat_from_metrics(self):
        metrics = [Metric(title="t", value=v, units="ms") for v in (1.0, 2.0, 3.0, 4.0)]
        stat = MetricStat.from_metrics(metrics, tag="latency")
        assert stat.count == 4
        assert stat.sum == 10.0
        assert stat.min == 1.0
        assert stat.max == 4.0
        assert stat.mean == 2.5
        assert stat.median == 2.5
        assert stat.to_dict()["tag"] == "latency"

    def test_stat_of_nothing(self):
        assert MetricStat.from_metrics([]).count == 0

    @pytest.mark.asyncio
    async def test_value_required(self, service):
        with pytest.raises(ValidationProblems) as exc_info:
            await service.create(Metric(title="Latency", units="ms"))
        assert exc_info.value.problems == ["Value is missing"]

    @pytest.mark.asyncio
    async def test_read_metric_stat(self, service):
        """Stats are computed per entity or per tag."""
        entity_id = tuid.new_id()
        for value in (10.0, 20.0, 30.0):
            await service.create(
                Metric(title="Latency", entity_id=entity_id, tags=["api"], value=value, units="ms")
            )

        stat = await service.read_metric_stat(ROW_ENTITY, entity_id)
        assert stat.count == 3
        assert stat.mean == 20.0
        assert stat.entity_id == entity_id
        assert (await service.read_metric_stat(ROW_TAG, "api")).sum == 60.0
        with pytest.raises(NotFoundError):
            await service.read_metric_stat(ROW_TAG, "other")

    @pytest.mark.asyncio
    async def test_date_range(self, service):
        """A [from, to) range around today includes today's metrics."""
        metric = await service.create(Metric(title="Count", tags=["jobs"], value=1.0, units="jobs"))
        day = metric.created_at.strftime("%Y-%m-%d")
        start, end = date_range_ids("2000-01-01", day)
        assert start < end

        assert await service.read_metric_range_from_row(ROW_TAG, "jobs", "2000-01-01", day) == []
        found = await service.read_metric_range_from_row(ROW_TAG, "jobs", day, "2199-01-01")
        assert [m.id for m in found] == [metric.id]
        with pytest.raises(ValueError, match="expect yyyy-mm-dd"):
            await service.read_metric_range_from_row(ROW_TAG, "jobs", "yesterday", day)


class TestEvent:
    """Tests for the EventService."""

    @pytest.mark.asyncio
    async def test_defaults(self, data_dir):
        service = EventService(new_event_table(data_dir, wal_mode=False))
        user_id = tuid.new_id()
        event = await service.create(Event(user_id=user_id, message="hello"))

        assert event.log_level == "INFO"
        assert event.expires_at is not None
        assert await service.read_all_log_levels() == ["INFO"]
        assert await service.read_all_entity_ids() == [user_id]

    @pytest.mark.asyncio
    async def test_message_required(self, data_dir):
        service = EventService(new_event_table(data_dir, wal_mode=False))
        with pytest.raises(ValidationProblems):
            await service.create(Event(log_level="WARN"))


class TestImage:
    """Tests for the ImageService."""

    @pytest.mark.asyncio
    async def test_create_standardizes(self, data_dir):
        """File name, tags and aspect ratio are derived on create."""
        service = ImageService(new_image_table(data_dir, wal_mode=False))
        image = await service.create(
            Image(title="Beach", media_type="image/png", width=1600, height=900, tags=[" Sunset", "beach", "sunset"])
        )

        assert image.file_name == image.id + ".png"
        assert image.tags == ["beach", "sunset"]
        assert image.aspect_ratio == round(1600 / 900, 4)
        assert image.status == "PENDING"
        assert [i.id for i in await service.read_images_by_tag("sunset")] == [image.id]
        assert await service.read_all_tags() == ["beach", "sunset"]

    @pytest.mark.asyncio
    async def test_unsupported_media_type(self, data_dir):
        service = ImageService(new_image_table(data_dir, wal_mode=False))
        with pytest.raises(ValidationProblems) as exc_info:
            await service.create(Image(title="Scan", media_type="image/tiff"))
        assert any(p.startswith("MediaType") for p in exc_info.value.problems)
