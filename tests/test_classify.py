from __future__ import annotations

from ingestomatic.models import (
    AttachmentMeta,
    AttachmentRole,
    ErrorKind,
    FileSource,
    ItemKind,
    ItemState,
    RemoteSource,
)
from ingestomatic.pipelines.classify import classify, expand_sources, kind_for_name

from .utils import make_damaged_zip, make_tar, make_zip

SUPPORTED = {"txt", "dcm", "raw", "snapshot", "zip"}


def _f(name: str, data: bytes = b"x", **kw) -> FileSource:
    return FileSource(name=name, data=data, **kw)


def test_empty_batch_yields_no_items(cfg):
    assert classify([], cfg) == []


def test_series_files_are_grouped_at_first_position(cfg):
    items = classify([_f("CT1.dcm"), _f("notes.txt"), _f("CT2.dcm")], cfg, supported=SUPPORTED)

    assert [i.name for i in items] == ["CT1.dcm", "notes.txt"]
    series = items[0]
    assert series.kind is ItemKind.SERIES
    assert [f.name for f in series.files] == ["CT1.dcm", "CT2.dcm"]


def test_kinds_follow_extensions(cfg):
    assert kind_for_name("vol.RAW", cfg) is ItemKind.RAW_VOLUME
    assert kind_for_name("case.snapshot", cfg) is ItemKind.SESSION_SNAPSHOT
    assert kind_for_name("brain.nii.gz", cfg) is ItemKind.REGULAR
    assert kind_for_name("IMG0001.dcm", cfg) is ItemKind.SERIES


def test_remote_items_wait_for_download(cfg):
    meta = AttachmentMeta(role=AttachmentRole.LABEL_OVERLAY)
    (item,) = classify(
        [RemoteSource(name="seg.raw", url="https://host/seg", auth_required=True, attachment=meta)],
        cfg,
    )

    assert item.kind is ItemKind.REMOTE
    assert item.content_kind is ItemKind.RAW_VOLUME
    assert item.state is ItemState.NEEDS_DOWNLOAD
    assert item.files == ()
    assert item.remote.url == "https://host/seg"
    assert item.remote.auth_required
    assert item.attachment.role is AttachmentRole.LABEL_OVERLAY


def test_archive_members_are_classified_in_place(cfg):
    archive = make_zip([("a.dcm", b"1"), ("b.dcm", b"2"), ("c.raw", b"3")])

    items = classify([_f("first.txt"), _f("bundle.zip", archive)], cfg, supported=SUPPORTED)

    assert [(i.name, i.kind) for i in items] == [
        ("first.txt", ItemKind.REGULAR),
        ("a.dcm", ItemKind.SERIES),
        ("c.raw", ItemKind.RAW_VOLUME),
    ]
    assert len(items[1].files) == 2


def test_failed_archive_becomes_error_item_in_position(cfg):
    items = classify(
        [_f("x.txt"), _f("broken.zip", b"nope"), _f("y.txt")], cfg, supported=SUPPORTED
    )

    assert [i.name for i in items] == ["x.txt", "broken.zip", "y.txt"]
    broken = items[1]
    assert broken.state is ItemState.ERROR
    assert broken.error_kind is ErrorKind.EXPANSION
    assert items[0].state is ItemState.LOADING
    assert items[2].state is ItemState.LOADING


def test_ids_are_unique_within_queue(cfg):
    items = classify([_f("a.txt"), _f("a.txt")], cfg, supported=SUPPORTED, taken_ids=["a.txt"])

    assert [i.id for i in items] == ["a.txt#2", "a.txt#3"]
    assert all(i.name == "a.txt" for i in items)


def test_raw_info_is_carried_to_item(cfg):
    info = {"dimensions": (2, 2, 1), "elementType": "uint8"}
    (item,) = classify([_f("v.raw", extra_info=info)], cfg)

    assert item.extra_info.dimensions == (2, 2, 1)


def test_classifying_expanded_output_is_stable(cfg):
    archive = make_zip([("a.dcm", b"1"), ("x.txt", b"2"), ("b.dcm", b"3")])
    batch = [_f("bundle.zip", archive), _f("y.txt")]

    once = classify(batch, cfg, supported=SUPPORTED)
    flat = expand_sources(batch, cfg, SUPPORTED)
    again = classify(flat, cfg, supported=SUPPORTED)

    def shape(items):
        return [(i.id, i.kind, [f.name for f in i.files]) for i in items]

    assert shape(once) == shape(again)


def test_tar_gz_is_expanded_like_any_container(cfg):
    archive = make_tar([("s/a.dcm", b"1"), ("s/b.dcm", b"2")], gz=True)

    (item,) = classify([_f("study.tar.gz", archive)], cfg, supported=SUPPORTED)

    assert item.kind is ItemKind.SERIES
    assert [f.name for f in item.files] == ["a.dcm", "b.dcm"]


def test_damaged_archive_member_fails_only_the_archive(cfg):
    items = classify(
        [_f("damaged.zip", make_damaged_zip("a.txt", b"abc" * 200)), _f("ok.txt")],
        cfg,
        supported=SUPPORTED,
    )

    assert [(i.name, i.state) for i in items] == [
        ("damaged.zip", ItemState.ERROR),
        ("ok.txt", ItemState.LOADING),
    ]
    assert items[0].error_kind is ErrorKind.EXPANSION
