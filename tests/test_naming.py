from ingestomatic.utils.naming import basename, container_suffix, get_extension, unique_name


def test_extension_is_last_segment_lowercased():
    assert get_extension("scan.NII.GZ") == "gz"
    assert get_extension("IMG0001.DCM") == "dcm"
    assert get_extension("README") == ""
    assert get_extension("trailing.") == ""


def test_basename_of_archive_member():
    assert basename("study/series/IMG1.dcm") == "IMG1.dcm"
    assert basename("top.txt") == "top.txt"


def test_unique_name_appends_counter():
    assert unique_name("a.nii", []) == "a.nii"
    assert unique_name("a.nii", ["a.nii"]) == "a.nii#2"
    assert unique_name("a.nii", ["a.nii", "a.nii#2"]) == "a.nii#3"


def test_container_suffix_matches_compound_suffixes():
    containers = ["zip", "tgz", "tar.gz"]

    assert container_suffix("study.TAR.GZ", containers) == "tar.gz"
    assert container_suffix("bundle.zip", containers) == "zip"
    assert container_suffix("brain.nii.gz", containers) is None
