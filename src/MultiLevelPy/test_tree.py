import pytest
from MultiLevelPy.Tree import *


################
### HELPERS ####
################

def write_csv(path, lines : list[str]) -> str:
    path.write_text("\n".join(lines) + "\n")
    return str(path)

################
#### TESTS #####
################

def test_nested_construction():
    """
    Children come back in insertion order, leaves carry their counts, and 
    paths start at the root.
    """
    data = MultiLevelDataset.from_nested({"a": (10, 7), 
                                          "g": {"b": (5, 1), "c": (3, 3)}})
    root = data.root
    assert not root.is_leaf()
    assert [child.label for child in data.get_children(root)] == ["a", "g"]
    
    a, g = data.get_children(root)
    assert a.is_leaf()
    assert a.path == ("root", "a")
    assert data.get_datum(a) == Datum(10, 7)
    assert data.get_children(a) == ()
    assert [leaf.path for leaf in data.get_children(g)] == \
           [("root", "g", "b"), ("root", "g", "c")]
    
    assert data.size() == 5
    assert len(data.leaves()) == 3
    assert len(data.internal_nodes()) == 2
    # post order: every child shows up before its parent
    order = data.nodes()
    assert order[-1] == root
    assert order.index(g) > order.index(data.get_children(g)[1])

def test_datum_on_internal_node():
    data = MultiLevelDataset.from_nested({"a": (1, 0)})
    with pytest.raises(TreeError):
        data.get_datum(data.root)

def test_structural_identity():
    """
    Nodes built separately from the same description are equal, hash equal,
    and can be used interchangeably as dictionary keys.
    """
    first = MultiLevelDataset.from_nested({"a": (10, 7), "b": (10, 3)})
    second = MultiLevelDataset.from_nested({"a": (2, 1), "b": (10, 3)})
    assert first.root == second.root
    lookup = {node : node.depth for node in first.nodes()}
    for node in second.nodes():
        assert lookup[node] == node.depth
    assert first.leaves()[0] != first.root

def test_node_variants():
    with pytest.raises(TypeError):
        TreeNode(("root",))
    leaf = LeafNode(("root", "a"), Datum(1, 1))
    internal = InternalNode(("root",), (leaf,))
    assert leaf.is_leaf()
    assert not internal.is_leaf()
    assert isinstance(leaf, TreeNode) and isinstance(internal, TreeNode)

def test_leaf_root():
    data = MultiLevelDataset(LeafNode(("root",), Datum(4, 2)))
    assert data.root.is_leaf()
    assert data.nodes() == [data.root]
    assert data.internal_nodes() == []

@pytest.mark.parametrize("counts", [(-1, 0), (3, 4), (3, -1), (2.5, 1), 
                                    (True, 0)])
def test_invalid_datum(counts):
    with pytest.raises(TreeError):
        Datum(*counts)

def test_invalid_nested():
    with pytest.raises(TreeError):
        MultiLevelDataset.from_nested({"a": {}})
    with pytest.raises(TreeError):
        MultiLevelDataset.from_nested({"a": "ten"})
    with pytest.raises(TreeError):
        MultiLevelDataset.from_nested({"a": (1, 2)})

def test_empirical_rate():
    assert Datum(10, 7).empirical_rate() == pytest.approx(8 / 12)
    assert 0 < Datum(0, 0).empirical_rate() < 1

def test_from_csv(tmp_path):
    filename = write_csv(tmp_path / "data.csv", [
        "state,county,numberOfTrials,numberOfSuccesses",
        "s1,c1,10,7",
        "s1,c2,10,3",
        "s2,c3,4,0",
    ])
    data = MultiLevelDataset.from_csv(filename)
    assert [n.label for n in data.get_children(data.root)] == ["s1", "s2"]
    leaves = {leaf.label : data.get_datum(leaf) for leaf in data.leaves()}
    assert leaves == {"c1": Datum(10, 7), "c2": Datum(10, 3), 
                      "c3": Datum(4, 0)}

def test_from_csv_errors(tmp_path):
    duplicated = write_csv(tmp_path / "dup.csv", [
        "group,numberOfTrials,numberOfSuccesses",
        "a,10,7",
        "a,3,1",
    ])
    with pytest.raises(TreeError):
        MultiLevelDataset.from_csv(duplicated)
    
    not_counts = write_csv(tmp_path / "bad.csv", [
        "group,numberOfTrials,numberOfSuccesses",
        "a,ten,7",
    ])
    with pytest.raises(TreeError):
        MultiLevelDataset.from_csv(not_counts)
    
    short = write_csv(tmp_path / "short.csv", [
        "group,numberOfTrials,numberOfSuccesses",
        "a,10",
    ])
    with pytest.raises(TreeError):
        MultiLevelDataset.from_csv(short)
    
    no_levels = write_csv(tmp_path / "nolevels.csv", [
        "numberOfTrials,numberOfSuccesses",
        "10,7",
    ])
    with pytest.raises(TreeError):
        MultiLevelDataset.from_csv(no_levels)
