#! /usr/bin/env python
# -*- coding: utf-8 -*-

##############################################################################
##  -- MultiLevelPy --
##  Library for Bayesian Inference of Brownian Traits on Hierarchical Trees
##
##  Copyright 2025 Mark Kessler, Luay Nakhleh.
##  All rights reserved.
##
##  See "LICENSE.txt" for terms and conditions of usage.
##
##  If you use this work or any portion thereof in published work,
##  please cite it as:
##
##     Mark Kessler, Luay Nakhleh. 2025.
##
##############################################################################

""" 
Author : Mark Kessler
Last Edit : 10/18/26
First Included in Version : 0.1.0
Docs   - [x]
Tests  - [x]
Design - [x]

Tree model for multi-level binomial datasets. Every leaf carries a pair of 
counts (trials, successes), every internal node carries an ordered tuple of 
children. A node is identified by its path from the root, so two nodes built
separately from the same data compare (and hash) equal.
"""

from __future__ import annotations
import csv
import numbers
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterator, Mapping, Union

ROOT_LABEL : str = "root"

#########################
#### EXCEPTION CLASS ####
#########################

class TreeError(Exception):
    """
    This exception is raised when a multi-level dataset is malformed, or when
    a node is queried for something it does not carry.
    """

    def __init__(self, message : str = "Malformed multi-level tree") -> None:
        """
        Initialize the exception with an error message.

        Args:
            message (str, optional): A custom error message. Defaults to 
                                     "Malformed multi-level tree".
        Returns:
            N/A
        """
        self.message = message
        super().__init__(self.message)

####################
#### DATA TYPES ####
####################

@dataclass(frozen = True)
class Datum:
    """
    Binomial observation attached to a leaf.
    """
    number_of_trials : int
    number_of_successes : int

    def __post_init__(self) -> None:
        for count in (self.number_of_trials, self.number_of_successes):
            if isinstance(count, bool) or \
               not isinstance(count, numbers.Integral):
                raise TreeError(f"Counts must be integers, got {count!r}")
        if self.number_of_trials < 0:
            raise TreeError("Number of trials must be non-negative")
        if not 0 <= self.number_of_successes <= self.number_of_trials:
            raise TreeError(f"Number of successes ({self.number_of_successes})"
                            f" must lie in [0, {self.number_of_trials}]")

    def empirical_rate(self) -> float:
        """
        Laplace-smoothed success rate, (k + 1) / (n + 2). Always strictly
        inside (0, 1), so it can be sent through a logit.

        Args:
            N/A
        Returns:
            float: The smoothed success rate.
        """
        return (self.number_of_successes + 1) / (self.number_of_trials + 2)


@dataclass(frozen = True)
class TreeNode(ABC):
    """
    Shared identity of leaf and internal nodes: the path of labels from the 
    root down to (and including) this node.
    """
    path : tuple[str, ...]

    @property
    def label(self) -> str:
        return self.path[-1]

    @property
    def depth(self) -> int:
        return len(self.path) - 1

    @abstractmethod
    def is_leaf(self) -> bool:
        """
        *ABSTRACT METHOD*

        Returns:
            bool: True for a leaf, False for an internal node.
        """
        pass

    def __str__(self) -> str:
        return "/".join(self.path)


@dataclass(frozen = True)
class LeafNode(TreeNode):
    datum : Datum = field(default = None, compare = False)

    def is_leaf(self) -> bool:
        return True


@dataclass(frozen = True)
class InternalNode(TreeNode):
    children : tuple[TreeNode, ...] = field(default = (), compare = False)

    def is_leaf(self) -> bool:
        return False


Node = Union[LeafNode, InternalNode]

#######################
#### DATASET CLASS ####
#######################

class MultiLevelDataset:
    """
    Read-only view over a rooted tree of binomial observations. This is the
    only tree interface that the inference code consumes.
    """

    def __init__(self, root : Node) -> None:
        """
        Wrap an already built tree.

        Args:
            root (Node): The root of the tree. May itself be a leaf.
        Returns:
            N/A
        """
        self.root : Node = root
        self._post_order : list[Node] = list(_post_order(root))

    def get_children(self, node : Node) -> tuple[Node, ...]:
        """
        Args:
            node (Node): Any node of this tree.
        Returns:
            tuple[Node, ...]: The ordered children, empty for a leaf.
        """
        if isinstance(node, InternalNode):
            return node.children
        return ()

    def get_datum(self, node : Node) -> Datum:
        """
        Args:
            node (Node): A leaf of this tree.
        Returns:
            Datum: The observed counts at that leaf.
        Raises:
            TreeError: If the node is not a leaf.
        """
        if not isinstance(node, LeafNode):
            raise TreeError(f"Node {node} is internal and carries no datum")
        return node.datum

    def nodes(self) -> list[Node]:
        """
        Returns:
            list[Node]: Every node, children before their parent.
        """
        return list(self._post_order)

    def leaves(self) -> list[LeafNode]:
        return [node for node in self._post_order if node.is_leaf()]

    def internal_nodes(self) -> list[InternalNode]:
        return [node for node in self._post_order if not node.is_leaf()]

    def size(self) -> int:
        return len(self._post_order)

    @classmethod
    def from_nested(cls, tree : Mapping, 
                    root_label : str = ROOT_LABEL) -> MultiLevelDataset:
        """
        Build a dataset from nested mappings. A value is either another 
        mapping (an internal node) or a (trials, successes) pair (a leaf).

        >>> MultiLevelDataset.from_nested({"a": (10, 7), "b": (10, 3)})

        Args:
            tree (Mapping): The nested description of the tree below the root.
            root_label (str, optional): Label of the root. Defaults to "root".
        Returns:
            MultiLevelDataset: The wrapped tree.
        Raises:
            TreeError: If a leaf is malformed or an internal node is empty.
        """
        return cls(_build((root_label,), tree))

    @classmethod
    def from_csv(cls, filename : str,
                 root_label : str = ROOT_LABEL) -> MultiLevelDataset:
        """
        Load a dataset from a csv file with a header row. The last two 
        columns hold the number of trials and number of successes, every 
        column before that holds one level of the hierarchy, coarsest first.

        Args:
            filename (str): Path to the csv file.
            root_label (str, optional): Label of the root. Defaults to "root".
        Returns:
            MultiLevelDataset: The loaded tree.
        Raises:
            TreeError: On short rows, non-integer counts, duplicated leaves, 
                       or a label used both as a leaf and an internal node.
        """
        nested : dict = {}
        with open(filename, newline = "") as handle:
            reader = csv.reader(handle)
            header = next(reader, None)
            if header is None or len(header) < 3:
                raise TreeError(f"{filename}: expected at least one level "
                                "column followed by trials and successes")
            n_levels = len(header) - 2
            for line_no, row in enumerate(reader, start = 2):
                if not row:
                    continue
                if len(row) != len(header):
                    raise TreeError(f"{filename}:{line_no}: expected "
                                    f"{len(header)} columns, got {len(row)}")
                labels = [label.strip() for label in row[:n_levels]]
                try:
                    counts = (int(row[-2]), int(row[-1]))
                except ValueError as err:
                    raise TreeError(f"{filename}:{line_no}: counts must be "
                                    "integers") from err
                _insert(nested, labels, counts, f"{filename}:{line_no}")
        return cls.from_nested(nested, root_label)

##########################
#### HELPER FUNCTIONS ####
##########################

def _build(path : tuple[str, ...], value) -> Node:
    if isinstance(value, Mapping):
        if len(value) == 0:
            raise TreeError(f"Internal node {'/'.join(path)} has no children")
        children = tuple(_build(path + (str(label),), child) 
                         for label, child in value.items())
        return InternalNode(path, children)
    if isinstance(value, Datum):
        return LeafNode(path, value)
    try:
        trials, successes = value
    except (TypeError, ValueError) as err:
        raise TreeError(f"Leaf {'/'.join(path)} must be a (trials, successes)"
                        f" pair, got {value!r}") from err
    return LeafNode(path, Datum(trials, successes))

def _insert(nested : dict, labels : list[str], counts : tuple[int, int], 
            where : str) -> None:
    cursor = nested
    for label in labels[:-1]:
        child = cursor.setdefault(label, {})
        if not isinstance(child, dict):
            raise TreeError(f"{where}: '{label}' is already a leaf")
        cursor = child
    if labels[-1] in cursor:
        raise TreeError(f"{where}: duplicated entry for "
                        f"'{'/'.join(labels)}'")
    cursor[labels[-1]] = counts

def _post_order(node : Node) -> Iterator[Node]:
    if isinstance(node, InternalNode):
        for child in node.children:
            yield from _post_order(child)
    yield node
