"""Application services: approval engine, currency conversion, reporting."""
