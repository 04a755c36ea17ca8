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
Module that contains sinks for per-iteration samples, so that the state of a
sampler can be tracked node by node over the course of a run.

Release Version: 0.1.0

Author: Mark Kessler
"""

from __future__ import annotations
import csv
from abc import ABC, abstractmethod
from dataclasses import dataclass

HEADER : tuple[str, ...] = ("iteration", "node", "name", "value", "log_weight")


@dataclass(frozen = True)
class SampleRecord:
    iteration : int
    node : str
    name : str
    value : float
    log_weight : float = 0.0


class SampleSink(ABC):
    """
    Anything that can receive (name, node, value, iteration) records, each 
    optionally carrying the log importance weight of the sample it came from.
    """

    @abstractmethod
    def write(self, name : str, node : object, value : float, 
              iteration : int, log_weight : float = 0.0) -> None:
        """
        *ABSTRACT METHOD*

        Record one value.

        Args:
            name (str): What is being recorded, ie "variance" or "imputed".
            node (object): The tree node the value belongs to. Stored as its
                           string form.
            value (float): The value.
            iteration (int): Sampler iteration the value was taken at.
            log_weight (float, optional): Unnormalized log importance 
                        weight of the sample. Defaults to 0, ie an 
                        unweighted draw such as an MCMC state or a 
                        resampled particle.
        Returns:
            N/A
        """
        pass


class MemorySampleSink(SampleSink):
    """
    Keeps every record in a list. Mostly useful for tests and notebooks.
    """

    def __init__(self) -> None:
        self.records : list[SampleRecord] = []

    def write(self, name : str, node : object, value : float, 
              iteration : int, log_weight : float = 0.0) -> None:
        self.records.append(SampleRecord(iteration, str(node), name, 
                                         float(value), float(log_weight)))

    def values(self, node : object, name : str = None) -> list[float]:
        """
        Args:
            node (object): A node (or its string form).
            name (str, optional): Restrict to one record name. Defaults to 
                                  None (any name).
        Returns:
            list[float]: The recorded values for that node, in order.
        """
        return [record.value for record in self.records 
                if record.node == str(node) 
                and (name is None or record.name == name)]


class CsvSampleSink(SampleSink):
    """
    Streams records into a csv file with columns iteration, node, name, value
    and log_weight.
    Use as a context manager, or call close() when done.
    """

    def __init__(self, filename : str) -> None:
        """
        Open (and truncate) the output file and write the header.

        Args:
            filename (str): Destination path.
        Returns:
            N/A
        """
        self.filename : str = filename
        self._handle = open(filename, "w", newline = "")
        self._writer = csv.writer(self._handle)
        self._writer.writerow(HEADER)

    def write(self, name : str, node : object, value : float, 
              iteration : int, log_weight : float = 0.0) -> None:
        self._writer.writerow((iteration, str(node), name, repr(float(value)),
                               repr(float(log_weight))))

    def close(self) -> None:
        if not self._handle.closed:
            self._handle.close()

    def __enter__(self) -> CsvSampleSink:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
