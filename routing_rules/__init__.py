"""Definition and validation of DICOM routing rules and their supporting configuration."""
